from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

if TYPE_CHECKING:
    from brightspots.core.delta_sync import DeltaSynchronizer
    from brightspots.core.record_store import RecordStore

logger = logging.getLogger(__name__)

# Involvement categories a company can pick per theme
FULLY_CLAIMED = "fully-claimed"
SOMEWHAT_ASSOCIATED = "somewhat-associated"
OUR_AMBITION = "our-ambition"
NOT_FOR_US = "not-for-us"

INVOLVEMENT_OPTIONS: Dict[str, str] = {
    FULLY_CLAIMED: "Fully claimed",
    SOMEWHAT_ASSOCIATED: "Somewhat associated",
    OUR_AMBITION: "It's our ambition",
    NOT_FOR_US: "Not for us",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def make_assessment(
    involvement: Optional[str],
    description: str = "",
    now: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build one theme assessment as the edit form does.

    The manager stores whatever it is given; stamping the timestamp is the
    caller's job and happens here.
    """
    if involvement is not None and involvement not in INVOLVEMENT_OPTIONS:
        raise ValueError(f"Unknown involvement {involvement!r}; expected one of {list(INVOLVEMENT_OPTIONS)}")
    return {
        "involvement": involvement,
        "description": (description or "").strip(),
        "timestamp": now or utc_now_iso(),
    }


def migrate_legacy_assessments(store: "RecordStore", legacy_map: Mapping[str, Any]) -> int:
    """
    Move a global {company: {theme id: assessment}} map onto company records.

    Each company's assessments are merged into its company record. Companies
    without any record are skipped. Returns the number of companies migrated.
    """
    migrated = 0
    for company, assessments in legacy_map.items():
        if not isinstance(assessments, dict):
            logger.warning("Ignoring legacy theme assessments for %s: not an object.", company)
            continue

        record = store.company_record(str(company))
        if record is None:
            logger.warning("Could not migrate theme assessments for %s: no matching records found", company)
            continue

        for theme_id, assessment in assessments.items():
            record.theme_assessments[str(theme_id)] = copy.deepcopy(assessment)
        migrated += 1
        logger.info("Migrated theme assessments for %s to record ID %s", company, record.id)

    return migrated


class ThemeAssessmentManager:
    """Company-scoped theme assessments stored on each company's primary record."""

    def __init__(self, store: "RecordStore", sync: Optional["DeltaSynchronizer"] = None) -> None:
        self.store = store
        self.sync = sync

    def migrate_legacy(self, legacy_map: Mapping[str, Any]) -> int:
        return migrate_legacy_assessments(self.store, legacy_map)

    def get(self, company: str) -> Dict[str, Any]:
        """A copy of the company's assessments; changes go through save()."""
        record = self.store.company_record(company)
        if record is None:
            return {}
        return copy.deepcopy(record.theme_assessments)

    def get_all(self) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for record in self.store:
            if record.company and record.theme_assessments:
                out[record.company] = copy.deepcopy(record.theme_assessments)
        return out

    def save(self, company: str, assessments: Mapping[str, Any]) -> bool:
        """
        Replace the company's assessments wholesale with a copy of `assessments`.

        Returns False (store untouched) when no record exists for the company.
        """
        record = self.store.company_record(company)
        if record is None:
            logger.error("Cannot save theme assessments: no records found for company %r", company)
            return False

        record.theme_assessments = copy.deepcopy(dict(assessments))
        logger.info("Saved theme assessments for %s to record ID %s", company, record.id)

        if self.sync is not None:
            self.sync.push_if_scoped(record)
        return True

    def save_customer_themes(self, company: str, themes: Union[str, List[str]]) -> bool:
        """Overwrite the customer-themes text of the company's primary record."""
        record = self.store.primary_record(company)
        if record is None:
            logger.error("Cannot save customer themes: no records found for company %r", company)
            return False

        if isinstance(themes, list):
            text = "; ".join(t.strip() for t in themes if t and t.strip())
        else:
            text = themes or ""

        record.customer_themes_text = text
        logger.info("Saved customer themes for %s to record ID %s", company, record.id)

        if self.sync is not None:
            self.sync.push_if_scoped(record)
        return True
