# alchemist/services/notifications.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    title: str
    description: str
    variant: str = "default"  # 'default' | 'destructive'


class Notifier:
    """Collects user-facing notices; an optional sink forwards them (e.g. to flask.flash)."""

    def __init__(self, sink: Optional[Callable[[Notice], None]] = None):
        self.notices: list[Notice] = []
        self._sink = sink

    def notify(self, title: str, description: str, variant: str = "default") -> Notice:
        notice = Notice(title, description, variant)
        self.notices.append(notice)
        if variant == "destructive":
            logger.warning("notice: %s - %s", title, description)
        else:
            logger.info("notice: %s - %s", title, description)
        if self._sink:
            self._sink(notice)
        return notice

    def error(self, title: str, description: str) -> Notice:
        return self.notify(title, description, variant="destructive")

    @property
    def last(self) -> Optional[Notice]:
        return self.notices[-1] if self.notices else None
