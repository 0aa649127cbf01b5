import threading

import pytest

from docchat.src.core.memory import ConversationMemory


def test_unknown_session_is_empty():
    memory = ConversationMemory()
    assert memory.get("never-used") == []


def test_sessions_are_isolated():
    memory = ConversationMemory()
    memory.append("alice", "user", "hi from alice")
    memory.append("bob", "user", "hi from bob")

    assert [t.content for t in memory.get("alice")] == ["hi from alice"]
    assert [t.content for t in memory.get("bob")] == ["hi from bob"]

    memory.clear("alice")
    assert memory.get("alice") == []
    assert len(memory.get("bob")) == 1


def test_clear_is_idempotent():
    memory = ConversationMemory()
    memory.clear("ghost")
    memory.append("s1", "user", "hello")
    memory.clear("s1")
    memory.clear("s1")
    assert memory.get("s1") == []
    assert memory.get("ghost") == []


def test_get_returns_a_copy():
    memory = ConversationMemory()
    memory.append("s1", "user", "hello")
    turns = memory.get("s1")
    turns.clear()
    assert len(memory.get("s1")) == 1


def test_window_evicts_oldest_turns_first():
    memory = ConversationMemory(max_messages=20)
    for i in range(25):
        memory.append("s1", "user" if i % 2 == 0 else "assistant", f"turn {i}")

    turns = memory.get("s1")
    assert len(turns) == 20
    assert turns[0].content == "turn 5"
    assert turns[-1].content == "turn 24"


def test_default_window_comes_from_settings():
    assert ConversationMemory().max_messages == 20


def test_append_exchange_records_user_then_assistant():
    memory = ConversationMemory()
    memory.append_exchange("s1", "question", "reply")
    turns = memory.get("s1")
    assert [(t.role, t.content) for t in turns] == [("user", "question"), ("assistant", "reply")]
    assert turns[0].timestamp <= turns[1].timestamp


def test_invalid_role_rejected():
    memory = ConversationMemory()
    with pytest.raises(ValueError):
        memory.append("s1", "system", "not allowed")
    assert memory.get("s1") == []


def test_invalid_window_rejected():
    with pytest.raises(ValueError):
        ConversationMemory(max_messages=-1)


def test_turn_to_dict():
    memory = ConversationMemory()
    memory.append("s1", "assistant", "done")
    payload = memory.get("s1")[0].to_dict()
    assert payload["role"] == "assistant"
    assert payload["content"] == "done"
    assert "T" in payload["timestamp"]


def test_concurrent_exchanges_on_distinct_sessions_are_not_lost():
    memory = ConversationMemory(max_messages=1000)

    def worker(n: int) -> None:
        for i in range(50):
            memory.append_exchange(f"session-{n}", f"q{i}", f"a{i}")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(memory) == 8
    for n in range(8):
        turns = memory.get(f"session-{n}")
        assert len(turns) == 100
        assert [t.content for t in turns[:2]] == ["q0", "a0"]


def test_concurrent_exchanges_on_one_session_stay_paired():
    memory = ConversationMemory(max_messages=20)

    def worker(n: int) -> None:
        for i in range(30):
            memory.append_exchange("shared", f"q{n}-{i}", f"a{n}-{i}")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    turns = memory.get("shared")
    assert len(turns) == 20
    for user_turn, assistant_turn in zip(turns[::2], turns[1::2]):
        assert user_turn.role == "user"
        assert assistant_turn.role == "assistant"
        assert user_turn.content[1:] == assistant_turn.content[1:]


def test_zero_window_rejected():
    with pytest.raises(ValueError):
        ConversationMemory(max_messages=0)
