from src.taskstream.config import DEFAULT_ERROR_TEXT, POST_ARTIFACT_DISCARD, POST_ARTIFACT_KEEP, load_settings


def test_defaults(monkeypatch):
    for name in (
        "TASKSTREAM_STREAM_URL",
        "TASKSTREAM_CONNECT_TIMEOUT",
        "TASKSTREAM_READ_TIMEOUT",
        "TASKSTREAM_SIDE_EFFECT_DELAY",
        "TASKSTREAM_SIDE_EFFECT_EVENTS",
        "TASKSTREAM_EXTRACT_ON_DELTA",
        "TASKSTREAM_ERROR_TEXT",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.connect_timeout == 3
    assert settings.read_timeout == 60
    assert settings.side_effect_delay == 5.0
    assert settings.side_effect_events == frozenset({"postCompleted"})
    assert settings.post_artifact_text == POST_ARTIFACT_KEEP
    assert settings.extract_on_delta is False
    assert settings.error_text == DEFAULT_ERROR_TEXT
    assert settings.bearer_token is None


def test_overrides_and_tolerant_parsing(monkeypatch):
    monkeypatch.setenv("TASKSTREAM_STREAM_URL", " http://backend:8080/stream ")
    monkeypatch.setenv("TASKSTREAM_CONNECT_TIMEOUT", "not-a-number")
    monkeypatch.setenv("TASKSTREAM_READ_TIMEOUT", "-5")
    monkeypatch.setenv("TASKSTREAM_SIDE_EFFECT_DELAY", "0.5")
    monkeypatch.setenv("TASKSTREAM_SIDE_EFFECT_EVENTS", "postCompleted, taskUpdated ,")
    monkeypatch.setenv("TASKSTREAM_POST_ARTIFACT_TEXT", "DISCARD")
    monkeypatch.setenv("TASKSTREAM_EXTRACT_ON_DELTA", "yes")
    monkeypatch.setenv("TASKSTREAM_BEARER_TOKEN", "tok")

    settings = load_settings()

    assert settings.stream_url == "http://backend:8080/stream"
    assert settings.connect_timeout == 3
    assert settings.read_timeout == 60
    assert settings.side_effect_delay == 0.5
    assert settings.side_effect_events == frozenset({"postCompleted", "taskUpdated"})
    assert settings.post_artifact_text == POST_ARTIFACT_DISCARD
    assert settings.extract_on_delta is True
    assert settings.bearer_token == "tok"


def test_unknown_post_artifact_policy_falls_back_to_keep(monkeypatch):
    monkeypatch.setenv("TASKSTREAM_POST_ARTIFACT_TEXT", "truncate")
    assert load_settings().post_artifact_text == POST_ARTIFACT_KEEP
