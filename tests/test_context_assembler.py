import pytest

from atom_assistant.exceptions import StorageUnavailable
from atom_assistant.models.message import MessageRole
from atom_assistant.services.context_assembler import ContextAssembler


def _seed(store, session_id, user_id, count):
    conversation = store.get_or_create(session_id, user_id)
    for i in range(count):
        role = MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT
        store.append_message(conversation.id, role, f"turn {i}")
    return conversation


def test_assemble_without_history(store):
    assembler = ContextAssembler(store, system_prompt="You are Atom.")

    messages = assembler.assemble("s1", "u1", "Hello")

    assert messages == [
        {"role": "system", "content": "You are Atom."},
        {"role": "user", "content": "Hello"},
    ]


def test_assemble_puts_system_first_and_new_message_last(store):
    _seed(store, "s1", "u1", 4)
    assembler = ContextAssembler(store, system_prompt="You are Atom.")

    messages = assembler.assemble("s1", "u1", "And tomorrow?")

    assert messages[0] == {"role": "system", "content": "You are Atom."}
    assert [m["content"] for m in messages[1:-1]] == ["turn 0", "turn 1", "turn 2", "turn 3"]
    assert [m["role"] for m in messages[1:-1]] == ["user", "assistant", "user", "assistant"]
    assert messages[-1] == {"role": "user", "content": "And tomorrow?"}


@pytest.mark.parametrize("window,stored", [(10, 14), (3, 8), (5, 2)])
def test_history_is_bounded_by_user_window(store, window, stored):
    store.update_settings("u1", context_window_size=window)
    _seed(store, "s1", "u1", stored)
    assembler = ContextAssembler(store)

    messages = assembler.assemble("s1", "u1", "next")

    history = messages[1:-1]
    assert len(history) == min(window, stored)
    assert history[-1]["content"] == f"turn {stored - 1}", "expected the newest stored message before the utterance"


def test_assembly_is_deterministic(store):
    _seed(store, "s1", "u1", 6)
    assembler = ContextAssembler(store)

    assert assembler.assemble("s1", "u1", "same") == assembler.assemble("s1", "u1", "same")


def test_long_content_is_passed_through_whole(store):
    conversation = store.get_or_create("s1", "u1")
    long_text = "site notes " * 2000
    store.append_message(conversation.id, MessageRole.USER, long_text)
    assembler = ContextAssembler(store)

    messages = assembler.assemble("s1", "u1", "summarize that")

    assert messages[1]["content"] == long_text


def test_context_awareness_disabled_sends_no_history(store):
    _seed(store, "s1", "u1", 4)
    store.update_settings("u1", enable_context_awareness=False)
    assembler = ContextAssembler(store, system_prompt="You are Atom.")

    messages = assembler.assemble("s1", "u1", "Hi again")

    assert [m["role"] for m in messages] == ["system", "user"]


def test_history_belongs_to_requested_session_only(store):
    _seed(store, "s1", "u1", 3)
    _seed(store, "s2", "u1", 2)
    assembler = ContextAssembler(store)

    messages = assembler.assemble("s2", "u1", "hello")

    assert [m["content"] for m in messages[1:-1]] == ["turn 0", "turn 1"]


def test_storage_failure_degrades_to_no_history(store, monkeypatch):
    def unavailable(user_id):
        raise StorageUnavailable("Conversation store unavailable during get_or_create_settings")

    monkeypatch.setattr(store, "get_or_create_settings", unavailable)
    assembler = ContextAssembler(store, system_prompt="You are Atom.")

    messages = assembler.assemble("s1", "u1", "Still there?")

    assert messages == [
        {"role": "system", "content": "You are Atom."},
        {"role": "user", "content": "Still there?"},
    ]
