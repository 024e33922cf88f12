# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from chat.models import GroundingSource, Message, Role
from chat.sessions import ChatStore, session_title


def message(store: ChatStore, text: str, role: Role = Role.USER) -> Message:
    return Message(
        id=store.new_id(),
        role=role,
        content=text,
        timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


# ---------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------

@pytest.mark.parametrize(
    ("text", "title"),
    [
        ("Hello", "Hello"),
        ("x" * 25, "x" * 25),
        ("What are the biggest breakthroughs in AI?", "What are the biggest brea..."),
        ("", "Untitled Chat"),
    ],
)
def test_session_title(text, title):
    assert session_title(text) == title


def test_first_user_message_sets_title_only_once(tmp_path: Path):
    store = ChatStore(tmp_path / "chats.json")
    session = store.create_session()
    assert session.title == "New Conversation"

    store.add_message(session.id, message(store, "Plan a trip to Lisbon"))
    store.add_message(session.id, message(store, "Something else entirely"))

    assert store.require(session.id).title == "Plan a trip to Lisbon"


# ---------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------

def test_new_sessions_go_first_and_become_current(tmp_path: Path):
    store = ChatStore(tmp_path / "chats.json")
    first = store.create_session()
    second = store.create_session()

    assert [s.id for s in store.sessions] == [second.id, first.id]
    assert store.current_id == second.id


def test_delete_current_falls_back_to_first_remaining(tmp_path: Path):
    store = ChatStore(tmp_path / "chats.json")
    older = store.create_session()
    newer = store.create_session()

    assert store.delete_session(newer.id) is True
    assert store.current_id == older.id

    assert store.delete_session(older.id) is True
    assert store.current_id is None
    assert store.delete_session("missing") is False


def test_ensure_session_creates_when_empty(tmp_path: Path):
    store = ChatStore(tmp_path / "chats.json")

    session = store.ensure_session()

    assert store.sessions == [session]
    assert store.ensure_session() is session


def test_sort_by_date_and_name(tmp_path: Path):
    store = ChatStore(tmp_path / "chats.json")
    a = store.create_session()
    b = store.create_session()
    a.title, b.title = "zebra", "Apple"
    a.created_at = datetime.now(timezone.utc) + timedelta(days=1)

    assert [s.id for s in store.sort("date")] == [a.id, b.id]
    assert [s.title for s in store.sort("name")] == ["Apple", "zebra"]
    with pytest.raises(ValueError):
        store.sort("size")


def test_ids_are_unique_and_increasing(tmp_path: Path):
    store = ChatStore(tmp_path / "chats.json")
    ids = [int(store.new_id()) for _ in range(50)]

    assert ids == sorted(ids)
    assert len(set(ids)) == 50


# ---------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------

def test_update_and_delete_message(tmp_path: Path):
    store = ChatStore(tmp_path / "chats.json")
    session = store.create_session()
    msg = store.add_message(session.id, message(store, "", Role.MODEL))

    updated = store.update_message(session.id, msg.id, content="done", is_streaming=False)
    assert updated.content == "done"
    assert store.require(session.id).messages == [updated]

    assert store.delete_message(session.id, msg.id) is True
    assert store.delete_message(session.id, msg.id) is False
    with pytest.raises(KeyError):
        store.update_message(session.id, msg.id, content="x")


# ---------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------

def test_history_survives_reload(tmp_path: Path):
    path = tmp_path / "chats.json"
    store = ChatStore(path)
    session = store.create_session()
    store.add_message(session.id, message(store, "hi"))
    reply = message(store, "hello", Role.MODEL)
    store.add_message(
        session.id,
        Message(
            id=reply.id,
            role=Role.MODEL,
            content="hello",
            timestamp=reply.timestamp,
            grounding_sources=(GroundingSource(title="Docs", url="https://example.com"),),
        ),
    )

    reloaded = ChatStore(path)

    assert reloaded.current_id == session.id
    restored = reloaded.require(session.id)
    assert restored.title == "hi"
    assert [m.content for m in restored.messages] == ["hi", "hello"]
    assert restored.messages[1].grounding_sources[0].url == "https://example.com"
    assert int(reloaded.new_id()) > int(reply.id)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert list(raw) == ["gemini_chat_sessions_v2"]
    assert raw["gemini_chat_sessions_v2"][0]["messages"][0]["role"] == "user"


@pytest.mark.parametrize("content", ["{not json", "[]", '{"gemini_chat_sessions_v2": [{"id": 1}]}'])
def test_corrupt_history_loads_empty(tmp_path: Path, content: str):
    path = tmp_path / "chats.json"
    path.write_text(content, encoding="utf-8")

    store = ChatStore(path)

    assert store.sessions == []
    assert store.current_id is None
