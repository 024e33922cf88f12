"""
Chat session history.

Responsibilities:
- Store ordered conversations and their messages
- Track which conversation is current
- Derive a conversation title from its first user message
- Persist every mutation to a single JSON file

Non-responsibilities:
- No model calls (see services.gemini_service)
- No routing of a send to text / image / video (see chat.dispatcher)
"""

from __future__ import annotations

import json
import time
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from chat.models import ChatSession, Message, Role
from chat.serialization import sessions_from_json, sessions_to_json
from observability.logger import log_event
from spec import (
    NEW_SESSION_TITLE,
    SESSION_TITLE_ELLIPSIS,
    SESSION_TITLE_MAX_CHARS,
    STORAGE_KEY,
    UNTITLED_SESSION_TITLE,
)


SortOrder = Literal["date", "name"]


def session_title(first_text: str) -> str:
    """Title for a conversation, derived from its first user message."""
    if not first_text:
        return UNTITLED_SESSION_TITLE
    if len(first_text) > SESSION_TITLE_MAX_CHARS:
        return first_text[:SESSION_TITLE_MAX_CHARS] + SESSION_TITLE_ELLIPSIS
    return first_text


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatStore:
    """
    File-backed list of chat sessions.

    Invariants:
    - Sessions are stored newest-created first (until re-sorted)
    - current_id is None only when there are no sessions
    - Ids are unique millisecond timestamps, strictly increasing
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._last_id = 0
        self._sessions: list[ChatSession] = self._load()
        self.current_id: str | None = self._sessions[0].id if self._sessions else None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def sessions(self) -> list[ChatSession]:
        return list(self._sessions)

    @property
    def current(self) -> ChatSession | None:
        if self.current_id is None:
            return None
        return self.get(self.current_id)

    def get(self, session_id: str) -> ChatSession | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def require(self, session_id: str) -> ChatSession:
        """Like get(), but raises KeyError for unknown ids."""
        session = self.get(session_id)
        if session is None:
            raise KeyError(session_id)
        return session

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self) -> ChatSession:
        """Start a new conversation; it goes first and becomes current."""
        session = ChatSession(
            id=self.new_id(),
            title=NEW_SESSION_TITLE,
            created_at=_utcnow(),
        )
        self._sessions.insert(0, session)
        self.current_id = session.id
        self._save()
        return session

    def ensure_session(self) -> ChatSession:
        """Return the current conversation, creating one if the store is empty."""
        current = self.current
        if current is not None:
            return current
        if self._sessions:
            self.current_id = self._sessions[0].id
            return self._sessions[0]
        return self.create_session()

    def select(self, session_id: str) -> ChatSession:
        session = self.require(session_id)
        self.current_id = session.id
        return session

    def delete_session(self, session_id: str) -> bool:
        """
        Remove a conversation.

        If it was current, the first remaining one becomes current.
        Returns False for unknown ids.
        """
        session = self.get(session_id)
        if session is None:
            return False
        self._sessions.remove(session)
        if self.current_id == session_id:
            self.current_id = self._sessions[0].id if self._sessions else None
        self._save()
        return True

    def sort(self, order: SortOrder) -> list[ChatSession]:
        """Reorder sessions: "date" is newest first, "name" is by title."""
        if order == "date":
            self._sessions.sort(key=lambda s: s.created_at, reverse=True)
        elif order == "name":
            self._sessions.sort(key=lambda s: s.title.lower())
        else:
            raise ValueError(f"unknown sort order: {order!r}")
        self._save()
        return self.sessions

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(self, session_id: str, message: Message) -> Message:
        """
        Append a message.

        The first user message of a conversation also sets its title.
        """
        session = self.require(session_id)
        if not session.messages and message.role is Role.USER:
            session.title = session_title(message.content)
        session.messages.append(message)
        self._save()
        return message

    def update_message(self, session_id: str, message_id: str, **changes: Any) -> Message:
        """Replace fields of one message (content, is_streaming, media_url...)."""
        session = self.require(session_id)
        for index, message in enumerate(session.messages):
            if message.id == message_id:
                updated = replace(message, **changes)
                session.messages[index] = updated
                self._save()
                return updated
        raise KeyError(message_id)

    def delete_message(self, session_id: str, message_id: str) -> bool:
        session = self.require(session_id)
        before = len(session.messages)
        session.messages = [m for m in session.messages if m.id != message_id]
        if len(session.messages) == before:
            return False
        self._save()
        return True

    # ------------------------------------------------------------------
    # Ids
    # ------------------------------------------------------------------

    def new_id(self) -> str:
        """Millisecond timestamp id, bumped past any id already issued."""
        candidate = max(time.time_ns() // 1_000_000, self._last_id + 1)
        self._last_id = candidate
        return str(candidate)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> list[ChatSession]:
        if not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            sessions = sessions_from_json(raw.get(STORAGE_KEY, []))
        except (OSError, ValueError, TypeError, KeyError, AttributeError) as exc:
            # Unreadable history starts empty rather than blocking the app
            log_event({
                "level": "WARNING",
                "event_type": "CHAT_STORE_LOAD_FAILED",
                "path": str(self._path),
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            return []

        for session in sessions:
            for item_id in [session.id, *(m.id for m in session.messages)]:
                if item_id.isdigit():
                    self._last_id = max(self._last_id, int(item_id))
        return sessions

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {STORAGE_KEY: sessions_to_json(self._sessions)}
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self._path)
