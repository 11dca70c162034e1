from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from word_memory.config import SESSION_TIMEOUT_MINUTES
from word_memory.quiz.session import QuizSession

UTC = timezone.utc

log = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class SessionEntry:
    session_id: str
    user_id: int
    session: QuizSession
    started_at: datetime
    last_seen_at: datetime
    mastered_word_ids: list = field(default_factory=list)


class SessionRegistry:
    """Live quiz sessions keyed by id. Runs idle longer than the timeout are dropped."""

    def __init__(
        self,
        *,
        timeout: timedelta = timedelta(minutes=SESSION_TIMEOUT_MINUTES),
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.timeout = timeout
        self.clock = clock
        self._entries: dict[str, SessionEntry] = {}
        self._lock = threading.Lock()

    def open(self, *, user_id: int, session: QuizSession) -> SessionEntry:
        now = self.clock()
        entry = SessionEntry(
            session_id=uuid.uuid4().hex,
            user_id=user_id,
            session=session,
            started_at=now,
            last_seen_at=now,
        )
        with self._lock:
            self._evict_expired(now)
            self._entries[entry.session_id] = entry
        return entry

    def get(self, session_id: str) -> SessionEntry | None:
        now = self.clock()
        with self._lock:
            self._evict_expired(now)
            entry = self._entries.get(session_id)
            if entry is not None:
                entry.last_seen_at = now
            return entry

    def close(self, session_id: str) -> SessionEntry | None:
        with self._lock:
            self._evict_expired(self.clock())
            return self._entries.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_expired(self, now: datetime) -> None:
        expired = [
            session_id
            for session_id, entry in self._entries.items()
            if now - entry.last_seen_at > self.timeout
        ]
        for session_id in expired:
            del self._entries[session_id]
        if expired:
            log.info("dropped %d abandoned quiz sessions", len(expired))
