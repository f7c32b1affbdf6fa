# alchemist/services/broadcast.py
from __future__ import annotations
import json, logging, time
from dataclasses import dataclass
from typing import Callable, Optional

from .storage import AUTH_EVENT_KEY, StorageChange, StorageView

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
BROADCAST_TYPES = (SIGNED_IN, SIGNED_OUT)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CrossTabAuthEvent:
    type: str
    timestamp: int

    def to_json(self) -> str:
        return json.dumps({"type": self.type, "timestamp": self.timestamp})

    @classmethod
    def from_json(cls, raw: str | None) -> Optional["CrossTabAuthEvent"]:
        if not raw:
            return None
        try:
            data = json.loads(raw)
            etype = data["type"]
            ts = int(data["timestamp"])
        except (ValueError, TypeError, KeyError):
            logger.warning("ignoring malformed auth broadcast: %r", raw)
            return None
        if etype not in BROADCAST_TYPES:
            logger.warning("ignoring unknown auth broadcast type: %r", etype)
            return None
        return cls(etype, ts)


class CrossTabAuthBroadcaster:
    """
    Tells other tabs that this tab signed in or out.

    Receivers get the envelope only as a hint: they are expected to re-read the
    session from the identity provider instead of trusting the payload.
    """

    def __init__(self, view: StorageView, clock: Callable[[], int] = _now_ms):
        self.view = view
        self._clock = clock

    def publish(self, event_type: str) -> CrossTabAuthEvent:
        if event_type not in BROADCAST_TYPES:
            raise ValueError(f"unsupported auth broadcast type: {event_type}")
        event = CrossTabAuthEvent(event_type, self._clock())
        self.view.set_item(AUTH_EVENT_KEY, event.to_json())
        logger.debug("broadcast %s at %s", event.type, event.timestamp)
        return event

    def subscribe(self, handler: Callable[[CrossTabAuthEvent], None]) -> Callable[[], None]:
        def on_change(change: StorageChange) -> None:
            if change.key != AUTH_EVENT_KEY:
                return
            event = CrossTabAuthEvent.from_json(change.new_value)
            if event:
                handler(event)

        return self.view.on_change(on_change)
