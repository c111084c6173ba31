import threading
from datetime import datetime, timedelta
from typing import Callable, Dict

from huechat.database import utcnow


class TypingRegistry:
    """
    In-memory record of who is composing a message.

    Marks older than the idle threshold are treated as absent at read time,
    whether or not sweep() has run. Nothing here is persisted; a restart
    simply forgets who was typing.
    """

    def __init__(self, idle_seconds: float = 5.0, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.idle = timedelta(seconds=idle_seconds)
        self._clock = clock
        self._marks: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def mark(self, identity: str) -> None:
        now = self._clock()
        with self._lock:
            self._marks[identity] = now

    def clear(self, identity: str) -> None:
        with self._lock:
            self._marks.pop(identity, None)

    def _is_live(self, marked_at: datetime, now: datetime) -> bool:
        return now - marked_at <= self.idle

    def active(self) -> list[str]:
        now = self._clock()
        with self._lock:
            snapshot = list(self._marks.items())
        return sorted(identity for identity, marked_at in snapshot if self._is_live(marked_at, now))

    def sweep(self) -> int:
        """Drop expired marks. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [i for i, marked_at in self._marks.items() if not self._is_live(marked_at, now)]
            for identity in expired:
                del self._marks[identity]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._marks)
