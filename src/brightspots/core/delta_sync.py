from __future__ import annotations

import concurrent.futures
import copy
import json
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

import requests

from brightspots.config import DELTA_FOLDER_PREFIX, HTTP_TIMEOUT_SECONDS
from brightspots.core.fields import SurveyRecord, clean_value, resolve_field
from brightspots.core.transport import TransportError, fetch_json, put_json

if TYPE_CHECKING:
    from brightspots.core.record_store import RecordStore

logger = logging.getLogger(__name__)

LOCAL_ONLY_WARNING = (
    "Could not save changes to the remote location. Your changes are saved locally "
    "but will not persist after page reload."
)

# Push states, most recent push only
IDLE = "idle"
SERIALIZING = "serializing"
SENDING = "sending"
SUCCEEDED = "succeeded"
FAILED = "failed"


@dataclass
class PushResult:
    record_id: str
    url: str
    ok: bool
    warning: Optional[str] = None
    error: Optional[str] = None


def build_delta_url(base_folder_url: str, record_id: str) -> str:
    """{base}/conclusion-assets/brightspots-deltas/delta{id}.json, with exactly one slash after base."""
    base = base_folder_url if base_folder_url.endswith("/") else f"{base_folder_url}/"
    return f"{base}{DELTA_FOLDER_PREFIX}delta{record_id}.json"


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def merge_delta(record: SurveyRecord, delta: Dict[str, Any]) -> SurveyRecord:
    """
    Overlay a delta (export layout) onto `record` in place.

      - map fields (challenges, techConcepts, productsVendors, themeAssessments,
        interestDetails): merged key by key one level deep, existing keys kept
      - text and tag fields: replaced
      - anything else: stored in record.extra; objects merged one level deep
        like the map fields, other values replaced
    """
    for key, value in delta.items():
        try:
            attr, kind = resolve_field(key)
        except KeyError:
            if isinstance(value, dict) and isinstance(record.extra.get(key), dict):
                record.extra[key].update(copy.deepcopy(value))
            else:
                record.extra[key] = copy.deepcopy(value)
            continue

        if attr == "id":
            # the delta file name already identifies the record
            continue

        cleaned = clean_value(kind, value)
        if kind in ("interest", "nested"):
            getattr(record, attr).update(cleaned)
        elif attr == "company":
            setattr(record, attr, cleaned.strip())
        else:
            setattr(record, attr, cleaned)

    return record


# ---------------------------------------------------------------------------
# Pull / push
# ---------------------------------------------------------------------------

def pull_delta(
    store: "RecordStore",
    base_folder_url: str,
    record_id: str,
    *,
    session: Optional[requests.Session] = None,
    timeout_seconds: int = HTTP_TIMEOUT_SECONDS,
) -> bool:
    """
    Fetch delta{record_id}.json and merge it into the matching record.

    A missing delta is the normal case for a record nobody edited yet. Any
    failure leaves the base data as loaded; returns True only when a delta
    was applied.
    """
    url = build_delta_url(base_folder_url, record_id)
    logger.info("Attempting to load delta data from: %s", url)

    try:
        delta = fetch_json(url, session=session, timeout_seconds=timeout_seconds)
    except TransportError as exc:
        if exc.not_found:
            logger.info("No delta file found for record %s", record_id)
        else:
            logger.error("Error loading delta data for record %s: %s", record_id, exc)
        return False

    if not isinstance(delta, dict):
        logger.error("Ignoring delta for record %s: expected a JSON object, got %s", record_id, type(delta).__name__)
        return False

    record = store.find_by_id(record_id)
    if record is None:
        logger.warning("Cannot apply delta data: no record found with ID %s", record_id)
        return False

    merge_delta(record, delta)
    store.reindex()
    logger.info("Applied delta data to record %s", record_id)
    return True


def serialize_record(record: SurveyRecord) -> str:
    return json.dumps(record.to_source(), indent=2, ensure_ascii=False)


def _send(
    url: str,
    record_id: str,
    body: str,
    session: Optional[requests.Session],
    timeout_seconds: int,
) -> PushResult:
    logger.info("Saving delta file to: %s", url)
    try:
        put_json(url, body, session=session, timeout_seconds=timeout_seconds)
    except TransportError as exc:
        logger.error("Error saving delta file for record %s: %s", record_id, exc)
        return PushResult(record_id=record_id, url=url, ok=False, warning=LOCAL_ONLY_WARNING, error=str(exc))

    logger.info("Successfully saved delta file for record %s", record_id)
    return PushResult(record_id=record_id, url=url, ok=True)


def push_delta(
    base_folder_url: str,
    record_id: str,
    record: SurveyRecord,
    *,
    session: Optional[requests.Session] = None,
    timeout_seconds: int = HTTP_TIMEOUT_SECONDS,
) -> PushResult:
    """Write the full record as its delta file. Never raises; see PushResult.ok."""
    url = build_delta_url(base_folder_url, record_id)
    return _send(url, record_id, serialize_record(record), session, timeout_seconds)


class DeltaSynchronizer:
    """
    Delta persistence for a session scoped to one record.

    When folder_url or record_id is missing, the synchronizer is inert:
    pull() does nothing and push_if_scoped() never sends.
    """

    def __init__(
        self,
        store: "RecordStore",
        folder_url: Optional[str] = None,
        record_id: Optional[str] = None,
        *,
        session: Optional[requests.Session] = None,
        timeout_seconds: int = HTTP_TIMEOUT_SECONDS,
        on_warning: Optional[Callable[[str], None]] = None,
        executor: Optional[concurrent.futures.Executor] = None,
    ) -> None:
        self.store = store
        self.folder_url = (folder_url or "").strip() or None
        self.record_id = (str(record_id).strip() if record_id is not None else "") or None
        self.session = session
        self.timeout_seconds = timeout_seconds
        self.on_warning = on_warning
        self.state = IDLE
        self.last_result: Optional[PushResult] = None
        self.last_future: Optional["concurrent.futures.Future[PushResult]"] = None
        self._executor = executor
        self._owns_executor = executor is None
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.folder_url and self.record_id)

    def is_scoped_to(self, record_id: str) -> bool:
        return self.enabled and str(record_id) == self.record_id

    def delta_url(self) -> Optional[str]:
        if not self.enabled:
            return None
        return build_delta_url(self.folder_url, self.record_id)

    def pull(self) -> bool:
        if not self.enabled:
            return False
        return pull_delta(
            self.store,
            self.folder_url,
            self.record_id,
            session=self.session,
            timeout_seconds=self.timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def _set_state(self, state: str) -> None:
        with self._lock:
            self.state = state

    def _serialize(self, record: SurveyRecord) -> str:
        self._set_state(SERIALIZING)
        return serialize_record(record)

    def _finish(self, result: PushResult) -> PushResult:
        with self._lock:
            self.state = SUCCEEDED if result.ok else FAILED
            self.last_result = result

        if not result.ok and self.on_warning is not None:
            try:
                self.on_warning(result.warning or LOCAL_ONLY_WARNING)
            except Exception:
                logger.exception("Push warning callback failed")
        return result

    def _deliver(self, record_id: str, body: str) -> PushResult:
        self._set_state(SENDING)
        url = build_delta_url(self.folder_url, record_id)
        return self._finish(_send(url, record_id, body, self.session, self.timeout_seconds))

    def _no_folder(self, record: SurveyRecord) -> PushResult:
        logger.error("Cannot save delta file for record %s: no deltas folder configured", record.id)
        return self._finish(
            PushResult(
                record_id=record.id,
                url="",
                ok=False,
                warning=LOCAL_ONLY_WARNING,
                error="No deltas folder configured for this session.",
            )
        )

    def push(self, record: SurveyRecord) -> PushResult:
        """Send the record now and wait for the outcome. Never raises; see PushResult.ok."""
        if not self.folder_url:
            return self._no_folder(record)
        return self._deliver(record.id, self._serialize(record))

    def push_detached(self, record: SurveyRecord) -> "concurrent.futures.Future[PushResult]":
        """
        Serialize the record immediately and send it on a background worker.

        The in-memory edit is already done when this returns; the future only
        tells whether the remote copy caught up.
        """
        if not self.folder_url:
            future: "concurrent.futures.Future[PushResult]" = concurrent.futures.Future()
            future.set_result(self._no_folder(record))
            self.last_future = future
            return future

        body = self._serialize(record)
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="delta-push"
            )
        future = self._executor.submit(self._deliver, record.id, body)
        self.last_future = future
        return future

    def push_if_scoped(self, record: SurveyRecord) -> Optional["concurrent.futures.Future[PushResult]"]:
        if not self.is_scoped_to(record.id):
            return None
        logger.info("Saving full record %s to its delta file", record.id)
        return self.push_detached(record)

    def close(self, wait: bool = True) -> None:
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=wait)
            self._executor = None
