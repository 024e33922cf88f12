"""
Authoritative live session state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.

Audio playback state (play-head cursor, active handles) deliberately
lives in the PlaybackScheduler, not here: it depends on the output clock.
"""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.enums.state import SessionState
from orchestrator.enums.status import CallStatus


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable snapshot of all reducer-owned session state."""

    state: SessionState = SessionState.IDLE
    status: CallStatus = CallStatus.CONNECTING

    # Append-only output transcription
    transcript: str = ""

    last_error: str | None = None
    close_reason: str | None = None
