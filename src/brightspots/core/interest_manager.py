from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from brightspots.core.fields import INTEREST_CATEGORIES, is_blank
from brightspots.core.theme_manager import utc_now_iso

if TYPE_CHECKING:
    from brightspots.core.delta_sync import DeltaSynchronizer
    from brightspots.core.record_store import RecordStore

logger = logging.getLogger(__name__)

NOT_SPECIFIED = "Not specified"


def make_detail_record(
    where: str,
    when: str,
    what: str,
    from_: Optional[str] = None,
    now: Optional[str] = None,
) -> Dict[str, str]:
    """
    One "where / when / what / from" note about a company's interest.

    where, when and what are required; from defaults to NOT_SPECIFIED.
    """
    missing = [name for name, value in (("where", where), ("when", when), ("what", what)) if is_blank(value)]
    if missing:
        raise ValueError(f"Missing required detail field(s): {', '.join(missing)}")

    return {
        "where": where.strip(),
        "when": when.strip(),
        "what": what.strip(),
        "from": from_.strip() if not is_blank(from_) else NOT_SPECIFIED,
        "timestamp": now or utc_now_iso(),
    }


def _check_category(category: str) -> None:
    if category not in INTEREST_CATEGORIES:
        raise ValueError(f"Unknown interest category {category!r}; expected one of {INTEREST_CATEGORIES}")


class InterestDetailManager:
    """
    Detail notes per (category, company, topic).

    The index serves reads; every save is mirrored onto the company's primary
    record under interestDetails[category][topic] so it is part of any export
    or delta file.
    """

    def __init__(self, store: "RecordStore", sync: Optional["DeltaSynchronizer"] = None) -> None:
        self.store = store
        self.sync = sync
        self._index: Dict[Tuple[str, str, str], Dict[str, Any]] = {}

    def initialize(self) -> int:
        """Rebuild the index from the interestDetails stored on the records."""
        self._index = {}
        for record in self.store:
            if not record.company or not record.interest_details:
                continue
            for category in INTEREST_CATEGORIES:
                topics = record.interest_details.get(category)
                if not isinstance(topics, dict):
                    continue
                for topic, detail in topics.items():
                    self._index[(category, record.company, topic)] = detail

        logger.info("Interest details initialized: %s topic(s)", len(self._index))
        return len(self._index)

    def get(self, company: str, category: str, topic: str) -> Optional[Dict[str, Any]]:
        """A copy of the stored detail, or None; changes go through save()."""
        detail = self._index.get((category, (company or "").strip(), topic))
        return copy.deepcopy(detail) if detail is not None else None

    def topics(self, company: str, category: str) -> Dict[str, Dict[str, Any]]:
        name = (company or "").strip()
        return {t: copy.deepcopy(d) for (c, co, t), d in self._index.items() if c == category and co == name}

    def save(self, company: str, category: str, topic: str, detail: Dict[str, Any]) -> bool:
        """
        Upsert the detail for a topic. Returns False when the company has no
        primary record; nothing is changed in that case.
        """
        _check_category(category)
        record = self.store.primary_record(company)
        if record is None:
            logger.error("Cannot save interest details: no primary record for company %r", company)
            return False

        stored = copy.deepcopy(detail)
        stored.setdefault("topic", topic)
        stored.setdefault("category", category)
        stored.setdefault("records", [])
        stored["lastUpdated"] = utc_now_iso()

        self._index[(category, record.company, topic)] = stored

        for name in INTEREST_CATEGORIES:
            if not isinstance(record.interest_details.get(name), dict):
                record.interest_details[name] = {}
        record.interest_details[category][topic] = copy.deepcopy(stored)
        logger.info("Saved interest details for %s / %s / %s to record ID %s", company, category, topic, record.id)

        if self.sync is not None:
            self.sync.push_if_scoped(record)
        return True

    def add_records(
        self,
        company: str,
        category: str,
        topic: str,
        new_records: List[Dict[str, Any]],
    ) -> bool:
        """Append detail records to a topic, keeping what was stored before."""
        _check_category(category)
        existing = self.get(company, category, topic) or {"records": []}
        detail = {
            "topic": topic,
            "category": category,
            "records": list(existing.get("records") or []) + [copy.deepcopy(r) for r in new_records],
        }
        return self.save(company, category, topic, detail)
