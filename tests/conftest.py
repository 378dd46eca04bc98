"""
Shared fixtures: raw survey records and a fake requests session.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest

from brightspots.core.record_store import RecordStore


def raw_record(
    record_id: str = "1",
    company: str = "Acme",
    name: str = "Anne",
    role: str = "",
    start_time: str = "01-06-2024 10:00",
    **overrides: Any,
) -> Dict[str, Any]:
    """Minimal record in the survey export layout."""
    rec: Dict[str, Any] = {
        "Id": record_id,
        "Start time": start_time,
        "Jouw naam": name,
        "Jouw bedrijf": company,
        "Rol": role,
        "newCustomerThemes": "",
        "newCustomerThemesTags": [],
        "emergingTechVendorProduct": "",
        "emergingTechVendorProductTags": [],
        "challenges": {},
        "techConcepts": {},
        "productsVendors": {},
    }
    rec.update(overrides)
    return rec


def make_store(raw_records: List[Dict[str, Any]]) -> RecordStore:
    store = RecordStore()
    store.set_records(raw_records)
    return store


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else (json.dumps(payload) if payload is not None else "")

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


class FakeSession:
    """
    Stands in for requests.Session.

    `routes` maps URL -> FakeResponse (or an exception instance to raise) for GETs.
    PUTs are recorded in `puts` and answered with `put_status`.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None, put_status: int = 200) -> None:
        self.routes = routes or {}
        self.put_status = put_status
        self.gets: List[str] = []
        self.puts: List[Dict[str, Any]] = []

    def get(self, url: str, timeout: Any = None) -> FakeResponse:
        self.gets.append(url)
        answer = self.routes.get(url, FakeResponse(404))
        if isinstance(answer, Exception):
            raise answer
        return answer

    def put(self, url: str, data: Any = None, headers: Any = None, timeout: Any = None) -> FakeResponse:
        self.puts.append({"url": url, "data": data, "headers": headers or {}, "timeout": timeout})
        if isinstance(self.put_status, Exception):
            raise self.put_status
        return FakeResponse(self.put_status)


@pytest.fixture
def acme_beta_records() -> List[Dict[str, Any]]:
    return [
        raw_record("1", "Acme", "Anne", role=""),
        raw_record("2", "Acme", "Bram", role="Architect"),
        raw_record("3", "Beta", "Chris", role=""),
    ]
