from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from brightspots.config import DEFAULT_DATA_FILE, DEFAULT_DELTAS_FOLDER, DEFAULT_RECORD_ID
from brightspots.core.delta_sync import DeltaSynchronizer
from brightspots.core.interest_manager import InterestDetailManager
from brightspots.core.record_store import RecordStore
from brightspots.core.theme_manager import ThemeAssessmentManager

logger = logging.getLogger(__name__)

# Query-string names used by the links that open the dashboard
DATA_FILE_PARAM = "parDataFile"
DELTAS_FOLDER_PARAM = "deltasFolderPAR"
RECORD_ID_PARAM = "uuid"
ADMIN_MODE_PARAM = "adminMode"


def _first(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return "" if value is None else str(value).strip()


@dataclass
class SessionConfig:
    """
    Per-session settings taken from the query string.

    A session is "delta scoped" when both a deltas folder and a record id are
    given: the delta is pulled once after loading, and every save that lands
    on that record is pushed back.
    """
    data_source: str = DEFAULT_DATA_FILE
    deltas_folder: Optional[str] = DEFAULT_DELTAS_FOLDER or None
    record_id: Optional[str] = DEFAULT_RECORD_ID or None
    admin_mode: bool = False

    @classmethod
    def from_query_params(cls, params: Mapping[str, Any]) -> "SessionConfig":
        return cls(
            data_source=_first(params.get(DATA_FILE_PARAM)) or DEFAULT_DATA_FILE,
            deltas_folder=_first(params.get(DELTAS_FOLDER_PARAM)) or DEFAULT_DELTAS_FOLDER or None,
            record_id=_first(params.get(RECORD_ID_PARAM)) or DEFAULT_RECORD_ID or None,
            admin_mode=_first(params.get(ADMIN_MODE_PARAM)).lower() == "yes",
        )

    @property
    def delta_scoped(self) -> bool:
        return bool(self.deltas_folder and self.record_id)


@dataclass
class DashboardSession:
    config: SessionConfig
    store: RecordStore
    sync: DeltaSynchronizer
    themes: ThemeAssessmentManager
    interests: InterestDetailManager
    delta_applied: bool = False

    def scoped_company(self) -> Optional[str]:
        """Company of the record this session is scoped to, if any."""
        if not self.config.record_id:
            return None
        record = self.store.find_by_id(self.config.record_id)
        if record is None or not record.company:
            return None
        return record.company

    def can_edit(self, company: str) -> bool:
        if self.config.admin_mode:
            return True
        return bool(company) and company == self.scoped_company()

    def export_payload(self) -> Dict[str, Any]:
        """Full dataset in the layout RecordStore.load() accepts."""
        survey_data: List[Dict[str, Any]] = [r.to_source() for r in self.store.all()]
        return {
            "surveyData": survey_data,
            "themeAssessments": self.themes.get_all(),
        }

    def close(self) -> None:
        self.sync.close()


def bootstrap(
    config: SessionConfig,
    *,
    themes_source: Optional[str] = None,
    session: Optional[requests.Session] = None,
    on_warning: Optional[Callable[[str], None]] = None,
) -> DashboardSession:
    """
    Load everything a dashboard session needs, in order:
      1. survey records (LoadError propagates; the dashboard cannot start without them)
      2. theme catalog (falls back to defaults)
      3. the delta for the scoped record, only after 1. finished
      4. the interest-detail index, built from the merged records
    """
    logger.info("Initializing data services (source=%s, scoped=%s)", config.data_source, config.delta_scoped)

    store = RecordStore()
    store.load(config.data_source, session=session)
    store.load_themes(themes_source, session=session)

    sync = DeltaSynchronizer(
        store,
        config.deltas_folder,
        config.record_id,
        session=session,
        on_warning=on_warning,
    )
    delta_applied = sync.pull() if config.delta_scoped else False

    themes = ThemeAssessmentManager(store, sync)
    interests = InterestDetailManager(store, sync)
    interests.initialize()

    logger.info("Data services initialized successfully")
    return DashboardSession(
        config=config,
        store=store,
        sync=sync,
        themes=themes,
        interests=interests,
        delta_applied=delta_applied,
    )
