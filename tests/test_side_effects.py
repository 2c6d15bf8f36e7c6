from types import SimpleNamespace

import redis

from src.taskstream.domain.chat_models import SideEffect
from src.taskstream.services import side_effects as se


def test_forward_side_effect_buffers_without_redis():
    se.forward_side_effect(SideEffect(name="postCompleted", payload={"postId": "p1"}), "s-1")

    recent = se.list_recent_side_effects()
    assert len(recent) == 1
    assert recent[0].name == "postCompleted"
    assert recent[0].payload == {"postId": "p1"}
    assert recent[0].session_id == "s-1"
    assert recent[0].forwarded_at.endswith("Z")


def test_buffer_is_bounded():
    for index in range(se._MAX_BUFFER + 5):
        se.forward_side_effect(SideEffect(name="postCompleted", payload={"n": index}), "s")
    recent = se.list_recent_side_effects(limit=500)
    assert len(recent) == se._MAX_BUFFER
    assert recent[-1].payload == {"n": se._MAX_BUFFER + 4}
    assert se.list_recent_side_effects(limit=0) == []


def test_publishes_to_redis_when_configured(monkeypatch):
    published = []

    class _FakeRedis:
        def ping(self):
            return True

        def publish(self, channel, message):
            published.append((channel, message))

    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setattr(se.redis.Redis, "from_url", classmethod(lambda cls, url, **kw: _FakeRedis()))

    se.forward_side_effect(SideEffect(name="postCompleted", payload={"postId": "p2"}), "s-2")

    assert published == [("taskstream.side_effects.postCompleted", '{"sessionId": "s-2", "payload": {"postId": "p2"}}')]


def test_redis_outage_is_not_fatal(monkeypatch):
    def _ping():
        raise redis.ConnectionError("down")

    def _unavailable(cls, url, **kw):
        return SimpleNamespace(ping=_ping)

    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setattr(se.redis.Redis, "from_url", classmethod(_unavailable))

    se.forward_side_effect(SideEffect(name="postCompleted"), "s-3")

    assert len(se.list_recent_side_effects()) == 1


def test_timer_scheduler_runs_immediately_without_delay():
    calls = []
    assert se.timer_scheduler(0, lambda: calls.append("ran")) is None
    assert calls == ["ran"]


def test_timer_scheduler_defers_with_delay():
    calls = []
    timer = se.timer_scheduler(30.0, lambda: calls.append("ran"))
    try:
        assert timer is not None and timer.daemon
        assert calls == []
    finally:
        timer.cancel()
