# alchemist/services/storage.py
"""
Origin-wide key/value storage shared by every open client tab.

Each tab talks to the store through its own StorageView. A write through one
view raises a change notification in every *other* view, never in the writer,
which is how the browser's `storage` event behaves. Values are JSON strings and
writes replace the whole key (last write wins).
"""
from __future__ import annotations
import itertools, logging, threading
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

LANGUAGE_KEY = "language"
AUTH_EVENT_KEY = "resume-alchemist.auth-event"


@dataclass(frozen=True)
class StorageChange:
    key: str
    old_value: Optional[str]
    new_value: Optional[str]


StorageListener = Callable[[StorageChange], None]


class SharedStorage:
    def __init__(self):
        self._data: dict[str, str] = {}
        self._views: dict[int, "StorageView"] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def view(self) -> "StorageView":
        with self._lock:
            view = StorageView(self, next(self._ids))
            self._views[view.view_id] = view
            return view

    def _get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def _write(self, writer: "StorageView", key: str, value: Optional[str]) -> None:
        with self._lock:
            old = self._data.get(key)
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value
            others = [v for v in self._views.values() if v.view_id != writer.view_id]
        if old == value:
            return
        change = StorageChange(key, old, value)
        for view in others:
            view._dispatch(change)

    def _drop(self, view: "StorageView") -> None:
        with self._lock:
            self._views.pop(view.view_id, None)


class StorageView:
    """One tab's handle. Same get_item/set_item/remove_item shape as supabase-auth storage."""

    def __init__(self, storage: SharedStorage, view_id: int):
        self._storage = storage
        self.view_id = view_id
        self._listeners: list[StorageListener] = []

    def get_item(self, key: str) -> Optional[str]:
        return self._storage._get(key)

    def set_item(self, key: str, value: str) -> None:
        self._storage._write(self, key, value)

    def remove_item(self, key: str) -> None:
        self._storage._write(self, key, None)

    def on_change(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def close(self) -> None:
        self._listeners.clear()
        self._storage._drop(self)

    def _dispatch(self, change: StorageChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("storage listener failed for key %s", change.key)
