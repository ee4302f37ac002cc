"""Short-lived user-facing status messages."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class Notice:
    key: str
    kind: str           # "success", "error" or "info"
    message: str
    expires_at: float

    def to_dict(self) -> dict:
        return {"key": self.key, "kind": self.kind, "message": self.message}


class NoticeBoard:
    """Keeps at most one notice per key; each one expires after its TTL.

    Posting under an existing key replaces the old notice and restarts its
    timer.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._notices: dict[str, Notice] = {}
        self._lock = threading.Lock()

    def post(self, key: str, kind: str, message: str, ttl: float) -> Notice:
        notice = Notice(key, kind, message, self._clock() + ttl)
        with self._lock:
            self._notices[key] = notice
        return notice

    def dismiss(self, key: str) -> None:
        with self._lock:
            self._notices.pop(key, None)

    def get(self, key: str) -> Notice | None:
        now = self._clock()
        with self._lock:
            notice = self._notices.get(key)
            if notice is not None and notice.expires_at <= now:
                del self._notices[key]
                return None
            return notice

    def active(self) -> list[Notice]:
        """Return unexpired notices, dropping the expired ones."""
        now = self._clock()
        with self._lock:
            expired = [k for k, n in self._notices.items() if n.expires_at <= now]
            for key in expired:
                del self._notices[key]
            return list(self._notices.values())
