from __future__ import annotations

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

# Root of the project (repo root)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Data directory holding the survey export and the theme catalog
DATA_DIR = PROJECT_ROOT / "data"

# ---------------------------------------------------------------------------
# App identity
# ---------------------------------------------------------------------------

APP_NAME = "Brightspots & Whitespots Dashboard"
APP_VERSION = "0.2.0"

# ---------------------------------------------------------------------------
# Data sources
#
# Both can be a local path or an http(s) URL. The surrounding app may still
# override the record source per session (parDataFile query parameter).
# ---------------------------------------------------------------------------

DEFAULT_DATA_FILE = os.getenv("BRIGHTSPOTS_DATA_FILE", "").strip() or str(DATA_DIR / "brightspots.json")
MAIN_THEMES_FILE = os.getenv("BRIGHTSPOTS_THEMES_FILE", "").strip() or str(DATA_DIR / "main-themes.json")

# ---------------------------------------------------------------------------
# Delta files
#
# A delta file holds the full current state of one record:
#   {deltas folder}/conclusion-assets/brightspots-deltas/delta{id}.json
# Folder and record id normally come from the query string
# (deltasFolderPAR / uuid); the env vars are only defaults.
# ---------------------------------------------------------------------------

DELTA_FOLDER_PREFIX = "conclusion-assets/brightspots-deltas/"

DEFAULT_DELTAS_FOLDER = os.getenv("BRIGHTSPOTS_DELTAS_FOLDER", "").strip()
DEFAULT_RECORD_ID = os.getenv("BRIGHTSPOTS_RECORD_ID", "").strip()

# ---------------------------------------------------------------------------
# HTTP behaviour
# ---------------------------------------------------------------------------

# Upper bound for every GET / PUT (the browser version had none)
HTTP_TIMEOUT_SECONDS = int(os.getenv("BRIGHTSPOTS_HTTP_TIMEOUT", "30"))

LOG_LEVEL = os.getenv("BRIGHTSPOTS_LOG_LEVEL", "INFO").strip().upper()
