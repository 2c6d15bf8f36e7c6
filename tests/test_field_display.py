from src.taskstream.domain.form_models import FieldSpec
from src.taskstream.infrastructure.history_store import InMemoryHistoryStore
from src.taskstream.domain.chat_models import ConversationSession, Message, Role
from src.taskstream.services.field_display import format_field_summary, format_value


def test_summary_lists_fields_with_approval_status():
    text = format_field_summary({"firstName": "John", "middleName": None})
    assert text == "**firstName**: John\n**middleName**: Not provided\n\n*Status: Wait for Approval*"


def test_summary_restricted_to_schema_uses_display_names():
    schema = [FieldSpec(name="firstName", displayName="First Name")]
    text = format_field_summary({"firstName": "John", "internalRef": "x"}, schema)
    assert text == "**First Name**: John\n\n*Status: Wait for Approval*"


def test_arrays_render_element_wise():
    assert format_value(["Jo", "Johnny"]) == "Jo, Johnny"
    assert format_value([]) == "Not provided"
    assert format_value(True) == "Yes"
    assert format_field_summary({}) == ""


def test_history_store_keeps_detached_copies():
    store = InMemoryHistoryStore()
    session = ConversationSession(messages=[Message(role=Role.USER, content="hi")])
    store.save(session)
    session.messages[0].content = "changed"

    loaded = store.load(session.session_id)
    assert loaded.messages[0].content == "hi"
    assert [m.content for m in store.load_messages(session.session_id)] == ["hi"]
    assert store.load("missing") is None
    assert store.count() == 1
