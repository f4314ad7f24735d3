from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from atom_assistant.agents.skills.conversation_summarization import ConversationSummarizationSkill
from atom_assistant.db.config import build_engine
from atom_assistant.db.init import init_db
from atom_assistant.exceptions import InputValidationError, NotFound, StorageUnavailable
from atom_assistant.models.conversation import Conversation
from atom_assistant.models.message import MessageRole, MessageType
from atom_assistant.services.conversation_service import ConversationService


class CountingSummarizer(ConversationSummarizationSkill):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.writes = 0

    def summarize(self, messages):
        self.writes += 1
        return super().summarize(messages)


class FailingSummarizer(ConversationSummarizationSkill):
    def summarize(self, messages):
        raise RuntimeError("summary backend down")


def _active_rows(db, session_id):
    statement = select(Conversation).where(
        Conversation.session_id == session_id,
        Conversation.is_active == True  # noqa: E712
    )
    return db.exec(statement).all()


def test_get_or_create_returns_same_conversation(store):
    first = store.get_or_create("s1", "u1", metadata={"platform": "ios"})
    second = store.get_or_create("s1", "u1")

    assert first.id == second.id, "expected the active conversation to be reused"
    assert first.title.startswith("Conversation "), "expected a date-derived default title"
    assert first.meta["createdFrom"] == "atom_voice_assistant"
    assert first.meta["platform"] == "ios", "expected caller metadata to be tagged"
    assert first.summary is None
    assert first.context == {}


@pytest.mark.parametrize("racers", [2, 3, 5])
def test_concurrent_get_or_create_yields_one_active_row(tmp_path, racers):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    init_db(engine)

    sessions = [Session(engine) for _ in range(racers)]
    try:
        stores = [ConversationService(db) for db in sessions]

        # Every racer misses on its first read, as if all checked before anyone inserted
        for racer in stores:
            real_find = racer._find_active
            misses = {"left": 1}

            def find(session_id, _real=real_find, _misses=misses):
                if _misses["left"]:
                    _misses["left"] -= 1
                    return None
                return _real(session_id)

            racer._find_active = find

        ids = {racer.get_or_create("shared", "u1").id for racer in stores}

        assert len(ids) == 1, "expected every racer to resolve to the first writer's conversation"
        assert len(_active_rows(sessions[0], "shared")) == 1, "expected exactly one active row"
    finally:
        for db in sessions:
            db.close()
        engine.dispose()


def test_deactivate_is_idempotent_and_session_can_restart(store, session):
    cleared = store.get_or_create("s1", "u1")

    assert store.deactivate("s1") == 1
    assert store.deactivate("s1") == 0, "expected a second clear to be a no-op"
    assert store.get_active("s1") is None

    restarted = store.get_or_create("s1", "u1")
    assert restarted.id != cleared.id, "expected a fresh conversation after clearing"
    assert len(_active_rows(session, "s1")) == 1


def test_append_then_read_back_preserves_order_and_roles(store):
    conversation = store.get_or_create("s1", "u1")
    store.append_message(conversation.id, MessageRole.USER, "What's on my calendar?", MessageType.VOICE)
    store.append_message(conversation.id, MessageRole.ASSISTANT, "You have two site visits.", MessageType.TEXT)

    messages = store.recent_messages("s1", 10)

    assert [m.role for m in messages] == ["user", "assistant"]
    assert [m.content for m in messages] == ["What's on my calendar?", "You have two site visits."]
    assert messages[0].message_type == "voice"


def test_append_message_estimates_tokens_and_tags_metadata(store):
    conversation = store.get_or_create("s1", "u1")
    message = store.append_message(conversation.id, "user", "abcdefghi", metadata={"processingTimeMs": 12})

    assert message.tokens_used == 3, "expected ceil(9 / 4) tokens"
    assert message.meta["processingTimeMs"] == 12
    assert message.meta["sessionId"] == "s1"
    assert "timestamp" in message.meta


def test_append_message_bumps_updated_at(store, session):
    conversation = store.get_or_create("s1", "u1")
    conversation.updated_at = datetime.utcnow() - timedelta(days=1)
    session.add(conversation)
    session.commit()
    before = conversation.updated_at

    store.append_message(conversation.id, MessageRole.USER, "hello")

    assert store.get_conversation(conversation.id).updated_at > before


def test_append_message_to_unknown_conversation_raises_not_found(store):
    with pytest.raises(NotFound):
        store.append_message(uuid4(), MessageRole.USER, "hello")


def test_get_conversation_unknown_raises_not_found(store):
    with pytest.raises(NotFound):
        store.get_conversation(uuid4())


@pytest.mark.parametrize("total,limit", [(0, 5), (3, 10), (12, 10), (7, 1)])
def test_recent_messages_are_ordered_and_bounded(store, total, limit):
    conversation = store.get_or_create("s1", "u1")
    for i in range(total):
        role = MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT
        store.append_message(conversation.id, role, f"message {i}")

    messages = store.recent_messages("s1", limit)

    assert len(messages) == min(total, limit)
    stamps = [m.created_at for m in messages]
    assert stamps == sorted(stamps), "expected non-decreasing created_at"
    if messages:
        assert messages[-1].content == f"message {total - 1}", "expected the newest message last"


def test_recent_messages_without_active_conversation_is_empty(store):
    assert store.recent_messages("missing", 10) == []
    assert store.recent_messages("missing", 0) == []


def test_settings_are_created_once(store):
    first = store.get_or_create_settings("u1")
    second = store.get_or_create_settings("u1")

    assert first.id == second.id
    assert first.context_window_size == 10
    assert first.auto_summarize_after == 20
    assert first.enable_auto_summary is True


def test_update_settings_validates_fields(store):
    updated = store.update_settings("u1", context_window_size=4, preferred_response_style="brief")
    assert updated.context_window_size == 4
    assert updated.preferred_response_style == "brief"

    with pytest.raises(InputValidationError):
        store.update_settings("u1", favourite_colour="blue")
    with pytest.raises(InputValidationError):
        store.update_settings("u1", auto_summarize_after=0)


@pytest.mark.parametrize("count,expected_writes", [(19, 0), (20, 1), (21, 1)])
def test_summary_written_exactly_on_threshold(session, count, expected_writes):
    summarizer = CountingSummarizer()
    store = ConversationService(session, summarizer=summarizer)
    conversation = store.get_or_create("s1", "u1")

    for i in range(count):
        store.append_message(conversation.id, MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT, f"m{i}")

    assert summarizer.writes == expected_writes
    summary = store.get_conversation(conversation.id).summary
    if expected_writes:
        assert summary.startswith("Summary of 20 messages"), "expected a descriptive digest"
    else:
        assert summary is None


def test_summary_threshold_follows_user_settings(session):
    summarizer = CountingSummarizer()
    store = ConversationService(session, summarizer=summarizer)
    store.update_settings("u1", auto_summarize_after=3)
    conversation = store.get_or_create("s1", "u1")

    for i in range(7):
        store.append_message(conversation.id, MessageRole.USER, f"m{i}")

    assert summarizer.writes == 2, "expected summaries at the 3rd and 6th message"


def test_summary_skipped_when_disabled(session):
    summarizer = CountingSummarizer()
    store = ConversationService(session, summarizer=summarizer)
    store.update_settings("u1", enable_auto_summary=False)
    conversation = store.get_or_create("s1", "u1")

    for i in range(20):
        store.append_message(conversation.id, MessageRole.USER, f"m{i}")

    assert summarizer.writes == 0


def test_summary_failure_does_not_fail_append(session):
    store = ConversationService(session, summarizer=FailingSummarizer())
    conversation = store.get_or_create("s1", "u1")

    for i in range(20):
        message = store.append_message(conversation.id, MessageRole.USER, f"m{i}")

    assert message.content == "m19", "expected the 20th append to succeed despite the summary error"
    assert store.get_conversation(conversation.id).summary is None
    assert store.message_count(conversation.id) == 20


def test_update_context_merges_variables(store):
    store.get_or_create("s1", "u1")
    store.update_context("s1", {"activeJobIds": ["J-1"]})
    conversation = store.update_context("s1", {"currentLocation": "Site B"})

    assert conversation.context == {"activeJobIds": ["J-1"], "currentLocation": "Site B"}
    assert store.update_context("missing", {"x": 1}) is None


def test_conversation_context_payload(store):
    conversation = store.get_or_create("s1", "u1")
    store.update_context("s1", {"currentLocation": "Site B"})
    for i in range(4):
        store.append_message(conversation.id, MessageRole.USER, f"m{i}")

    payload = store.conversation_context("s1", window_size=2)

    assert payload["conversationId"] == str(conversation.id)
    assert payload["sessionId"] == "s1"
    assert [m["content"] for m in payload["messages"]] == ["m2", "m3"]
    assert payload["totalMessages"] == 4
    assert payload["context"] == {"currentLocation": "Site B"}


def test_conversation_context_for_unknown_session(store):
    payload = store.conversation_context("missing")

    assert payload["conversationId"] is None
    assert payload["messages"] == []
    assert payload["totalMessages"] == 0


def test_recent_conversations_and_cleanup(store, session):
    stale = store.get_or_create("old", "u1")
    store.get_or_create("new", "u1")
    stale.updated_at = datetime.utcnow() - timedelta(days=45)
    session.add(stale)
    session.commit()

    assert [c.session_id for c in store.recent_conversations("u1")] == ["new", "old"]
    assert store.cleanup_stale_conversations(retention_days=30) == 1
    assert [c.session_id for c in store.recent_conversations("u1")] == ["new"]


def test_database_failures_surface_as_storage_unavailable(store, monkeypatch):
    def broken_exec(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    monkeypatch.setattr(store.db, "exec", broken_exec)

    with pytest.raises(StorageUnavailable):
        store.recent_messages("s1", 10)
    with pytest.raises(StorageUnavailable):
        store.get_or_create("s1", "u1")


def test_summary_log_reports_digest_window(session, caplog):
    store = ConversationService(session, summarizer=ConversationSummarizationSkill(summarize_after=2))
    conversation = store.get_or_create("s1", "u1")

    with caplog.at_level("INFO", logger="atom_assistant.services.conversation_service"):
        store.append_message(conversation.id, MessageRole.USER, "hi")
        store.append_message(conversation.id, MessageRole.ASSISTANT, "hello")

    created = [r.getMessage() for r in caplog.records if "Created summary" in r.getMessage()]
    assert created, "expected a summary log line"
    assert "window of 2" in created[0]
    assert "1 user message(s)" in created[0]
