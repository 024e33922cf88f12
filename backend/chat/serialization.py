"""
Chat history serialization.

Responsibilities:
- Convert sessions and messages to JSON-ready dicts (camelCase keys,
  ISO-8601 timestamps) for the history file and the HTTP API
- Parse them back

Non-responsibilities:
- No file IO (see chat.sessions.ChatStore)
- No schema migration: unknown keys are ignored, missing required keys
  raise KeyError
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from chat.models import ChatSession, GroundingSource, Message, Role


def message_to_json(message: Message) -> dict[str, Any]:
    """
    Output format:
    {
        "id": "...", "role": "user" | "model" | "system",
        "content": "...", "timestamp": "<iso8601>",
        "isStreaming": false,
        "mediaUrl": "..." | null, "mediaType": "image" | "video" | null,
        "groundingSources": [{"title": "...", "url": "..."}]
    }
    """
    return {
        "id": message.id,
        "role": message.role.value,
        "content": message.content,
        "timestamp": message.timestamp.isoformat(),
        "isStreaming": message.is_streaming,
        "mediaUrl": message.media_url,
        "mediaType": message.media_type,
        "groundingSources": [
            {"title": s.title, "url": s.url}
            for s in message.grounding_sources
        ],
    }


def message_from_json(data: dict[str, Any]) -> Message:
    return Message(
        id=str(data["id"]),
        role=Role(data["role"]),
        content=data.get("content", ""),
        timestamp=datetime.fromisoformat(data["timestamp"]),
        is_streaming=bool(data.get("isStreaming", False)),
        media_url=data.get("mediaUrl"),
        media_type=data.get("mediaType"),
        grounding_sources=tuple(
            GroundingSource(title=s["title"], url=s["url"])
            for s in data.get("groundingSources") or ()
        ),
    )


def session_to_json(session: ChatSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "title": session.title,
        "createdAt": session.created_at.isoformat(),
        "messages": [message_to_json(m) for m in session.messages],
    }


def session_from_json(data: dict[str, Any]) -> ChatSession:
    return ChatSession(
        id=str(data["id"]),
        title=data.get("title", ""),
        created_at=datetime.fromisoformat(data["createdAt"]),
        messages=[message_from_json(m) for m in data.get("messages", [])],
    )


def sessions_to_json(sessions: Iterable[ChatSession]) -> list[dict[str, Any]]:
    return [session_to_json(s) for s in sessions]


def sessions_from_json(data: Iterable[dict[str, Any]]) -> list[ChatSession]:
    return [session_from_json(s) for s in data]
