# coinvault/notices.py
from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Deque, List, Literal

from pydantic import BaseModel, Field

from coinvault.security_utils import generate_secure_token, sanitize_input

logger = logging.getLogger(__name__)

Variant = Literal["default", "warning", "destructive"]


class Notice(BaseModel):
    """User-facing toast payload."""
    id: str = Field(default_factory=lambda: generate_secure_token(8))
    title: str
    description: str
    variant: Variant = "default"
    created_at: float = Field(default_factory=time.time)


Listener = Callable[[Notice], None]


class NoticeBus:
    """
    Fan-out of notices to UI listeners, plus a short history so a freshly
    mounted view can catch up.
    """

    def __init__(self, history: int = 50):
        self._listeners: List[Listener] = []
        self._recent: Deque[Notice] = deque(maxlen=history)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, notice: Notice) -> Notice:
        self._recent.append(notice)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                # a broken view must not break the publisher
                logger.exception("notice listener failed for %r", notice.title)
        return notice

    def notify(self, title: str, description: str, variant: Variant = "default") -> Notice:
        # the UI renders notices as HTML
        return self.publish(Notice(title=sanitize_input(title), description=sanitize_input(description),
                                   variant=variant))

    def recent(self) -> List[Notice]:
        return list(self._recent)
