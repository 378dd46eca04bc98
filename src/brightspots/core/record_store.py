from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

import requests

from brightspots.config import DEFAULT_DATA_FILE, HTTP_TIMEOUT_SECONDS, MAIN_THEMES_FILE
from brightspots.core.fields import SurveyRecord
from brightspots.core.theme_manager import migrate_legacy_assessments
from brightspots.core.transport import TransportError, fetch_json

logger = logging.getLogger(__name__)


class LoadError(Exception):
    """Raised when the survey export cannot be fetched or has an unexpected shape."""


@dataclass
class Theme:
    id: str
    name: str
    description: str = ""

    @classmethod
    def from_source(cls, raw: Dict[str, Any]) -> "Theme":
        def pick(*keys: str) -> str:
            for k in keys:
                v = raw.get(k)
                if v is not None:
                    return str(v).strip()
            return ""

        return cls(
            id=pick("Id", "id"),
            name=pick("Name", "name"),
            description=pick("Description", "description"),
        )


# Used when the theme catalog cannot be loaded; the dashboard must still start.
DEFAULT_THEMES: Tuple[Theme, ...] = (
    Theme(id="1", name="AI"),
    Theme(id="2", name="Cyber Security"),
    Theme(id="3", name="IT Regulations"),
)


class RecordStore:
    """
    In-memory survey records plus the theme catalog.

    Records keep their load order. Two indexes are maintained next to the list:
      - record id -> record
      - company -> primary record id (first record of the company with a blank role)
    Both are rebuilt on load and after anything that may change ids,
    companies or roles (see reindex()).
    """

    def __init__(self) -> None:
        self._records: List[SurveyRecord] = []
        self._by_id: Dict[str, SurveyRecord] = {}
        self._primary_by_company: Dict[str, str] = {}
        self._first_by_company: Dict[str, str] = {}
        self.themes: List[Theme] = []
        self.source: Optional[str] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        self._records = []
        self._by_id = {}
        self._primary_by_company = {}
        self._first_by_company = {}
        self.themes = []
        self.source = None

    def set_records(self, raw_records: List[Any]) -> List[SurveyRecord]:
        records: List[SurveyRecord] = []
        for pos, raw in enumerate(raw_records, start=1):
            if not isinstance(raw, dict):
                logger.warning("Skipping survey entry #%s: expected an object, got %s.", pos, type(raw).__name__)
                continue
            record = SurveyRecord.from_source(raw, fallback_id=str(pos))
            if not str(raw.get("Id", raw.get("id", ""))).strip():
                logger.warning("Survey entry #%s has no Id; using %r.", pos, record.id)
            records.append(record)

        self._records = records
        self.reindex()
        return records

    def reindex(self) -> None:
        by_id: Dict[str, SurveyRecord] = {}
        primary: Dict[str, str] = {}
        first: Dict[str, str] = {}

        for record in self._records:
            if record.id in by_id:
                logger.warning("Duplicate record id %r; keeping the first occurrence.", record.id)
                continue
            by_id[record.id] = record

            company = record.company
            if not company:
                continue
            first.setdefault(company, record.id)
            if not record.has_role:
                primary.setdefault(company, record.id)

        self._by_id = by_id
        self._primary_by_company = primary
        self._first_by_company = first

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(
        self,
        source: Optional[str] = None,
        *,
        session: Optional[requests.Session] = None,
        timeout_seconds: int = HTTP_TIMEOUT_SECONDS,
    ) -> List[SurveyRecord]:
        """
        Load the survey export from `source` (URL or path).

        Accepted payloads:
          - [record, ...]                                  (legacy layout)
          - {"surveyData": [...], "themeAssessments": {}}  (themeAssessments optional)

        A global themeAssessments map (company -> theme id -> assessment) is
        migrated onto each company's record and then dropped.
        """
        location = source or DEFAULT_DATA_FILE
        logger.info("Loading survey data from %s", location)

        try:
            payload = fetch_json(location, session=session, timeout_seconds=timeout_seconds)
        except TransportError as exc:
            raise LoadError(f"Could not load survey data from {location}: {exc}") from exc

        legacy_assessments: Optional[Dict[str, Any]] = None
        if isinstance(payload, dict) and isinstance(payload.get("surveyData"), list):
            raw_records = payload["surveyData"]
            legacy = payload.get("themeAssessments")
            if isinstance(legacy, dict) and legacy:
                legacy_assessments = legacy
        elif isinstance(payload, list):
            raw_records = payload
            logger.info("Survey data is in the legacy array layout.")
        else:
            raise LoadError(
                "Invalid data format: expected an array or an object with a surveyData array "
                f"(got {type(payload).__name__})."
            )

        records = self.set_records(raw_records)
        self.source = location
        logger.info("Survey data loaded: %s entries", len(records))

        if legacy_assessments:
            logger.info("Legacy theme assessments found; migrating onto company records.")
            migrate_legacy_assessments(self, legacy_assessments)

        return records

    def load_themes(
        self,
        source: Optional[str] = None,
        *,
        session: Optional[requests.Session] = None,
        timeout_seconds: int = HTTP_TIMEOUT_SECONDS,
    ) -> List[Theme]:
        """Load the theme catalog; any failure falls back to DEFAULT_THEMES."""
        location = source or MAIN_THEMES_FILE
        try:
            payload = fetch_json(location, session=session, timeout_seconds=timeout_seconds)
            if not isinstance(payload, list):
                raise TransportError(f"Theme catalog at {location} is not a JSON array.", url=location)
        except TransportError as exc:
            logger.warning("Error loading themes data (%s); using fallback themes.", exc)
            self.themes = [Theme(t.id, t.name, t.description) for t in DEFAULT_THEMES]
            return self.themes

        self.themes = [Theme.from_source(item) for item in payload if isinstance(item, dict)]
        logger.info("Loaded %s themes from %s", len(self.themes), location)
        return self.themes

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def all(self) -> Tuple[SurveyRecord, ...]:
        return tuple(self._records)

    def __iter__(self) -> Iterator[SurveyRecord]:
        return iter(tuple(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def find_by_id(self, record_id: Any) -> Optional[SurveyRecord]:
        if record_id is None:
            return None
        return self._by_id.get(str(record_id).strip())

    def records_for_company(self, company: str) -> List[SurveyRecord]:
        name = (company or "").strip()
        if not name:
            return []
        return [r for r in self._records if r.company == name]

    def primary_record(self, company: str) -> Optional[SurveyRecord]:
        """First record of `company` without a role, the target of company-level edits."""
        record_id = self._primary_by_company.get((company or "").strip())
        return self._by_id.get(record_id) if record_id is not None else None

    def company_record(self, company: str) -> Optional[SurveyRecord]:
        """The primary record, or the company's first record when every record has a role."""
        record = self.primary_record(company)
        if record is not None:
            return record
        record_id = self._first_by_company.get((company or "").strip())
        return self._by_id.get(record_id) if record_id is not None else None

