from __future__ import annotations

from datetime import datetime, timedelta, timezone

from word_memory.quiz.registry import SessionRegistry
from word_memory.quiz.session import QuizSession

UTC = timezone.utc


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def test_abandoned_sessions_are_dropped_after_timeout():
    clock = FakeClock()
    registry = SessionRegistry(timeout=timedelta(minutes=30), clock=clock)
    for _ in range(500):
        registry.open(user_id=1, session=QuizSession([]))
    assert len(registry) == 500

    clock.advance(minutes=31)
    fresh = registry.open(user_id=1, session=QuizSession([]))

    assert len(registry) == 1
    assert registry.get(fresh.session_id) is fresh


def test_expired_session_is_not_returned():
    clock = FakeClock()
    registry = SessionRegistry(timeout=timedelta(minutes=30), clock=clock)
    entry = registry.open(user_id=1, session=QuizSession([]))

    clock.advance(minutes=31)

    assert registry.get(entry.session_id) is None
    assert registry.close(entry.session_id) is None


def test_activity_keeps_session_alive():
    clock = FakeClock()
    registry = SessionRegistry(timeout=timedelta(minutes=30), clock=clock)
    entry = registry.open(user_id=1, session=QuizSession([]))

    for _ in range(4):
        clock.advance(minutes=20)
        assert registry.get(entry.session_id) is entry

    assert entry.started_at == datetime(2026, 10, 19, 9, 0, tzinfo=UTC)
    assert entry.last_seen_at == clock.now
