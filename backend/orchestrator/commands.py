"""
Side-effect command definitions for the live session.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from audio.frames import CaptureBlock

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Uplink
    START_CAPTURE = "START_CAPTURE"
    SEND_UPLINK = "SEND_UPLINK"

    # Downlink / playback
    PLAY_AUDIO = "PLAY_AUDIO"
    INTERRUPT_PLAYBACK = "INTERRUPT_PLAYBACK"
    RELEASE_PLAYBACK = "RELEASE_PLAYBACK"

    # Presentation layer
    SEND_TO_CLIENT = "SEND_TO_CLIENT"

    # Session / lifecycle
    TEARDOWN = "TEARDOWN"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Uplink Commands
# =============================================================================

@dataclass(frozen=True)
class StartCapture(Command):
    """Begin the capture -> encode -> send pipeline."""
    command_type: CommandType = CommandType.START_CAPTURE


@dataclass(frozen=True)
class SendUplink(Command):
    """Encode one capture block and hand it to the transport."""
    block: CaptureBlock
    command_type: CommandType = CommandType.SEND_UPLINK


# =============================================================================
# Playback Commands
# =============================================================================

@dataclass(frozen=True)
class PlayAudio(Command):
    """Decode one downlink audio payload and schedule it."""
    data: bytes | str
    mime_type: str | None
    command_type: CommandType = CommandType.PLAY_AUDIO


@dataclass(frozen=True)
class InterruptPlayback(Command):
    """Stop all scheduled audio and rewind the play-head cursor."""
    command_type: CommandType = CommandType.INTERRUPT_PLAYBACK


@dataclass(frozen=True)
class ReleasePlayback(Command):
    """Drop a naturally finished handle from the active set."""
    handle_id: int
    command_type: CommandType = CommandType.RELEASE_PLAYBACK


# =============================================================================
# Presentation Commands
# =============================================================================

@dataclass(frozen=True)
class SendToClient(Command):
    """Queue a control message (status / transcript) for the UI."""
    message: dict[str, Any]
    command_type: CommandType = CommandType.SEND_TO_CLIENT


# =============================================================================
# Lifecycle Commands
# =============================================================================

@dataclass(frozen=True)
class Teardown(Command):
    """
    Release capture, transport and output context.

    Every release is attempted even if an earlier one fails.
    """
    reason: str
    command_type: CommandType = CommandType.TEARDOWN


# =============================================================================
# Observability
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Structured log payload; runtime adds session context."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
