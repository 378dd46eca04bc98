from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from brightspots.config import HTTP_TIMEOUT_SECONDS, PROJECT_ROOT

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when a JSON resource cannot be fetched or written."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


def _build_retry_session() -> requests.Session:
    """
    Build a requests Session with conservative retries.

    Only GETs are retried; a PUT of a delta file is sent exactly once.
    """
    session = requests.Session()

    retry = Retry(
        total=3,
        connect=3,
        read=3,
        status=3,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=4)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


_SESSION: Optional[requests.Session] = None


def _get_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        _SESSION = _build_retry_session()
    return _SESSION


def is_remote(location: str) -> bool:
    return str(location).lower().startswith(("http://", "https://"))


def _local_path(location: str) -> Path:
    path = Path(location)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


def fetch_json(
    location: str,
    *,
    session: Optional[requests.Session] = None,
    timeout_seconds: int = HTTP_TIMEOUT_SECONDS,
) -> Any:
    """
    GET a JSON document from an http(s) URL or read it from a local path.

    A missing local file is reported like an HTTP 404 so callers can treat
    "absent" the same way for both.
    """
    if not is_remote(location):
        path = _local_path(location)
        if not path.exists():
            raise TransportError(f"File not found: {path}", status_code=404, url=str(path))
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except OSError as exc:
            raise TransportError(f"Could not read {path}: {exc}", url=str(path)) from exc
        except ValueError as exc:
            raise TransportError(f"Invalid JSON in {path}: {exc}", url=str(path)) from exc

    try:
        resp = (session or _get_session()).get(location, timeout=timeout_seconds)
    except requests.RequestException as exc:
        raise TransportError(f"HTTP error while fetching {location}: {exc}", url=location) from exc

    if resp.status_code == 404:
        raise TransportError(f"Not found: {location}", status_code=404, url=location)

    if not resp.ok:
        raise TransportError(
            f"HTTP {resp.status_code} while fetching {location}",
            status_code=resp.status_code,
            url=location,
        )

    try:
        return resp.json()
    except ValueError as exc:
        preview = (resp.text or "")[:200]
        raise TransportError(
            f"Non-JSON response from {location} (status={resp.status_code}). Preview: {preview}",
            status_code=resp.status_code,
            url=location,
        ) from exc


def put_json(
    location: str,
    body: str,
    *,
    session: Optional[requests.Session] = None,
    timeout_seconds: int = HTTP_TIMEOUT_SECONDS,
) -> None:
    """
    Upsert an already serialized JSON document.

    Remote locations get a PUT with a JSON content type; local paths are
    written in place (parent folders created).
    """
    if not is_remote(location):
        path = _local_path(location)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(body, encoding="utf-8")
        except OSError as exc:
            raise TransportError(f"Could not write {path}: {exc}", url=str(path)) from exc
        return

    try:
        resp = (session or _get_session()).put(
            location,
            data=body.encode("utf-8"),
            headers={"Content-Type": "application/json"},
            timeout=timeout_seconds,
        )
    except requests.RequestException as exc:
        raise TransportError(f"HTTP error while writing {location}: {exc}", url=location) from exc

    if not resp.ok:
        raise TransportError(
            f"HTTP {resp.status_code} while writing {location}",
            status_code=resp.status_code,
            url=location,
        )
