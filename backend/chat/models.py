"""
Chat data model.

Rules:
- Plain data only; the store decides how these change
- Message is immutable; edits replace it
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal


class Role(str, Enum):
    USER = "user"
    MODEL = "model"
    SYSTEM = "system"


MediaType = Literal["image", "video"]


@dataclass(frozen=True)
class GroundingSource:
    """One web citation attached to a model answer."""
    title: str
    url: str


@dataclass(frozen=True)
class Message:
    """Single chat message."""
    id: str
    role: Role
    content: str
    timestamp: datetime
    is_streaming: bool = False
    media_url: str | None = None
    media_type: MediaType | None = None
    grounding_sources: tuple[GroundingSource, ...] = ()


@dataclass
class ChatSession:
    """One conversation: title plus chronologically ordered messages."""
    id: str
    title: str
    created_at: datetime
    messages: list[Message] = field(default_factory=list)
