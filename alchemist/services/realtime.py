# alchemist/services/realtime.py
from __future__ import annotations
import logging, threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    new: dict = field(default_factory=dict)
    old: dict = field(default_factory=dict)


ChangeCallback = Callable[[ChangeEvent], None]


class ChangeFeed:
    """
    Row change notifications, filtered by table and equality on the new row.
    Delivery is fire-and-forget: nothing is queued for late subscribers.
    """

    def __init__(self):
        self._subs: dict[int, tuple[str, dict, ChangeCallback]] = {}
        self._next = 0
        self._lock = threading.Lock()

    def subscribe(self, table: str, filters: dict, callback: ChangeCallback) -> Callable[[], None]:
        with self._lock:
            self._next += 1
            sub_id = self._next
            self._subs[sub_id] = (table, dict(filters), callback)

        def unsubscribe() -> None:
            with self._lock:
                self._subs.pop(sub_id, None)
        return unsubscribe

    def publish(self, table: str, event_type: str, new: dict, old: Optional[dict] = None) -> int:
        event = ChangeEvent(table, event_type, dict(new or {}), dict(old or {}))
        with self._lock:
            targets = [
                cb for (t, flt, cb) in self._subs.values()
                if t == table and all(str(event.new.get(k)) == str(v) for k, v in flt.items())
            ]
        for cb in targets:
            try:
                cb(event)
            except Exception:
                logger.exception("change listener failed on %s %s", table, event_type)
        return len(targets)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)


class RealtimeStatusWatcher:
    """
    Watches one analysis row until an external worker fills its result field.

    on_ready(value) fires at most once. dispose() unsubscribes unconditionally,
    and anything delivered after it is dropped. Use as a context manager to
    get disposal on every exit path.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        record_id: str,
        on_ready: Callable[[Any], None],
        key: str = "id",
        result_field: str = "google_doc_url",
        table: str = "resume_analyses",
        on_error: Optional[Callable[[Any], None]] = None,
    ):
        self.feed = feed
        self.record_id = record_id
        self.on_ready = on_ready
        self.on_error = on_error
        self.key = key
        self.result_field = result_field
        self.table = table
        self.ready = False
        self.result: Any = None
        self._disposed = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._lock = threading.Lock()

    def subscribe(self) -> "RealtimeStatusWatcher":
        if self._disposed:
            raise RuntimeError("watcher already disposed")
        if self._unsubscribe is None:
            self._unsubscribe = self.feed.subscribe(self.table, {self.key: self.record_id}, self._handle)
            logger.debug("watching %s.%s=%s", self.table, self.key, self.record_id)
        return self

    def dispose(self) -> None:
        with self._lock:
            self._disposed = True
            unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe:
            unsubscribe()

    def __enter__(self) -> "RealtimeStatusWatcher":
        return self.subscribe()

    def __exit__(self, *exc) -> None:
        self.dispose()

    def _handle(self, event: ChangeEvent) -> None:
        if event.event_type not in (INSERT, UPDATE):
            return
        error = event.new.get("error")
        value = event.new.get(self.result_field)
        fire = False
        with self._lock:
            if self._disposed or self.ready:
                return
            if not error and value:
                self.ready = fire = True
                self.result = value
        if error:
            logger.warning("analysis %s reported error: %s", self.record_id, error)
            if self.on_error:
                self.on_error(error)
        elif fire:
            self.on_ready(value)
