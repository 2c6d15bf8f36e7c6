import json

from fastapi.testclient import TestClient

from src.taskstream.api.main import app
from src.taskstream.infrastructure.session_registry import get_registry

from .utils import ScriptedChannels, sse, sse_stream

client = TestClient(app)

FORM_REPLY = "Details:\n```artifact:form\n" + json.dumps(
    {"fields": {"firstName": "John", "documentNumber": "AB123456"}, "actions": [{"label": "Confirm", "action": "confirm"}]}
) + "\n```"


def _use_channels(*scripts) -> ScriptedChannels:
    channels = ScriptedChannels(*scripts)

    def builder(credentials):
        channels.credentials = credentials
        return channels

    get_registry().set_channel_factory_builder(builder)
    return channels


def _create_session(**body):
    res = client.post("/chat/sessions", json=body)
    assert res.status_code == 201, res.text
    return res.json()


def test_health_and_root():
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"
    assert client.get("/").json()["name"] == "TaskStream Runtime API"


def test_send_message_streams_reply_and_forwards_bearer():
    channels = _use_channels(sse_stream(sse("message", {"content": "Hel"}), sse("message", {"content": "lo"}), sse("done")))
    session = _create_session(title="Onboarding", context={"taskId": "t-1"})

    res = client.post(
        f"/chat/sessions/{session['session_id']}/messages",
        json={"content": "hi"},
        headers={"Authorization": "Bearer caller-token"},
    )

    assert res.status_code == 200, res.text
    reply = res.json()
    assert reply["role"] == "assistant"
    assert reply["content"] == "Hello"
    assert reply["streaming"] is False
    assert channels.transports[0].headers["Authorization"] == "Bearer caller-token"
    assert channels.transports[0].payload["taskId"] == "t-1"

    got = client.get(f"/chat/sessions/{session['session_id']}").json()
    assert [m["role"] for m in got["messages"]] == ["user", "assistant"]
    assert session["session_id"] in client.get("/chat/sessions").json()


def test_reply_with_artifact_feeds_form_creation():
    _use_channels(sse_stream(sse("message", {"content": FORM_REPLY}), sse("done")))
    session = _create_session()
    reply = client.post(f"/chat/sessions/{session['session_id']}/messages", json={"content": "scan"}).json()
    assert reply["fields"] == {"firstName": "John", "documentNumber": "AB123456"}
    assert reply["artifact"]["type"] == "form"

    action = client.post(
        f"/chat/sessions/{session['session_id']}/messages/{reply['message_id']}/actions",
        json={"label": "Confirm"},
    )
    assert action.status_code == 200
    assert action.json()["action"] == "confirm"

    form = client.post("/forms", json={"session_id": session["session_id"], "message_id": reply["message_id"]})
    assert form.status_code == 201, form.text
    form_id = form.json()["form_id"]
    assert [f["name"] for f in form.json()["fields"]] == ["firstName", "documentNumber"]

    summary = client.get(f"/forms/{form_id}/summary").json()
    assert summary["content"].startswith("**First Name**: John\n**Document Number**: AB123456")

    first = client.post(f"/forms/{form_id}/start").json()
    assert first["field_value"] == "John"


def test_unknown_session_and_action_return_404():
    assert client.get("/chat/sessions/nope").status_code == 404
    assert client.post("/chat/sessions/nope/messages", json={"content": "x"}).status_code == 404

    _use_channels(sse("done"))
    session = _create_session()
    res = client.post(f"/chat/sessions/{session['session_id']}/messages/missing/actions", json={"label": "Go"})
    assert res.status_code == 404


def test_empty_message_is_rejected():
    _use_channels()
    session = _create_session()
    res = client.post(f"/chat/sessions/{session['session_id']}/messages", json={"content": ""})
    assert res.status_code == 422


def test_close_session_saves_history():
    _use_channels(sse_stream(sse("message", {"content": "bye"}), sse("done")))
    session = _create_session()
    client.post(f"/chat/sessions/{session['session_id']}/messages", json={"content": "hi"})

    assert client.delete(f"/chat/sessions/{session['session_id']}").status_code == 204
    assert client.delete(f"/chat/sessions/{session['session_id']}").status_code == 404

    stored = client.get(f"/chat/sessions/{session['session_id']}")
    assert stored.status_code == 200
    assert stored.json()["messages"][-1]["content"] == "bye"


def test_cancel_without_stream_is_noop():
    _use_channels()
    session = _create_session()
    res = client.post(f"/chat/sessions/{session['session_id']}/cancel")
    assert res.status_code == 200
    assert res.json()["streaming"] is False


def test_hydrated_session_restores_artifacts():
    _use_channels()
    res = client.post(
        "/chat/sessions",
        json={"history": [{"role": "user", "content": "scan"}, {"role": "assistant", "content": FORM_REPLY, "streaming": True}]},
    )
    assert res.status_code == 201
    messages = res.json()["messages"]
    assert messages[1]["streaming"] is False
    assert messages[1]["fields"]["firstName"] == "John"


def test_side_effects_are_listed_after_stream():
    _use_channels(sse_stream(sse("postCompleted", {"postId": "p9"}), sse("done")))
    session = _create_session()
    client.post(f"/chat/sessions/{session['session_id']}/messages", json={"content": "post it"})

    effects = client.get("/chat/side-effects").json()
    assert effects[-1]["name"] == "postCompleted"
    assert effects[-1]["session_id"] == session["session_id"]


def test_form_lifecycle_over_http():
    schema = [
        {"name": "firstName", "displayName": "First Name", "validation": {"required": True}},
        {"name": "age", "type": "number"},
    ]
    form = client.post("/forms", json={"fields": schema}).json()
    form_id = form["form_id"]
    assert form["state"] == "idle"

    assert client.get(f"/forms/{form_id}/review").status_code == 409
    assert client.post(f"/forms/{form_id}/start").json()["field_name"] == "firstName"

    bad = client.post(f"/forms/{form_id}/answers", json={"field": "firstName", "value": ""}).json()
    assert bad["is_valid"] is False

    client.post(f"/forms/{form_id}/answers", json={"field": "firstName", "value": "Ana"})
    done = client.post(f"/forms/{form_id}/answers", json={"field": "age", "value": "31"}).json()
    assert done["is_complete"] is True

    edit = client.post(f"/forms/{form_id}/edit", json={"field": "age"})
    assert edit.status_code == 200
    client.post(f"/forms/{form_id}/answers", json={"field": "age", "value": "32"})

    assert client.get(f"/forms/{form_id}/review").json()["data"] == {"firstName": "Ana", "age": "32"}

    rejected = client.post(f"/forms/{form_id}/submit", json={"data": {"age": "old"}})
    assert rejected.status_code == 422
    assert rejected.json()["detail"]["field"] == "age"

    submitted = client.post(f"/forms/{form_id}/submit", json={})
    assert submitted.status_code == 200
    assert submitted.json()["data"] == {"firstName": "Ana", "age": "32"}
    assert client.post(f"/forms/{form_id}/submit", json={}).status_code == 409
    assert client.get("/forms/missing").status_code == 404


def test_form_from_message_requires_both_ids():
    res = client.post("/forms", json={"session_id": "only-session"})
    assert res.status_code == 422


def test_extract_and_flatten_endpoints():
    res = client.post("/extract", json={"text": 'Result:\n```json\n{"firstName": "Maria", "confidence": 0.9}\n```'})
    assert res.status_code == 200
    body = res.json()
    assert body["artifact"]["kind"] == "json"
    assert body["fields"] == {"firstName": "Maria"}
    assert body["before"] == "Result:\n"

    partial = client.post("/extract", json={"text": "```artifact:form\n{"}).json()
    assert partial["artifact"] is None

    flat = client.post("/extract/flatten", json={"data": {"personalInfo": {"firstName": "Ahmed"}, "metadata": {}}})
    assert flat.json() == {"fields": {"personalInfo.firstName": "Ahmed"}}


def test_routes_are_mirrored_under_api_prefix():
    res = client.post("/api/extract/flatten", json={"data": {"a": 1}})
    assert res.status_code == 200
    assert res.json() == {"fields": {"a": 1}}


def test_default_channel_factory_reads_token_from_environment(monkeypatch):
    monkeypatch.setenv("TASKSTREAM_BEARER_TOKEN", "env-token")
    channel = get_registry().channel_factory()()
    assert channel._credentials() == "env-token"

    monkeypatch.setenv("TASKSTREAM_BEARER_TOKEN", "")
    assert channel._credentials() is None
