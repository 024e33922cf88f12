"""
Unified event definitions for the live session reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Event sources:
- LiveVoiceSession (start / close requests, setup failures)
- Capture thread (CaptureBlockReady)
- Transport receiver (TransportOpened, downlink events, close / error)
- Output thread (PlaybackEnded)

All of them converge on the session inbox and are reduced one at a time,
strictly in receipt order.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from audio.frames import CaptureBlock
from errors import TransportError


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Session lifecycle (controller)
    # ------------------------------------------------------------------
    START_REQUESTED = "START_REQUESTED"
    START_FAILED = "START_FAILED"
    CLOSE_REQUESTED = "CLOSE_REQUESTED"

    # ------------------------------------------------------------------
    # Transport lifecycle
    # ------------------------------------------------------------------
    TRANSPORT_OPENED = "TRANSPORT_OPENED"
    TRANSPORT_CLOSED = "TRANSPORT_CLOSED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"

    # ------------------------------------------------------------------
    # Uplink
    # ------------------------------------------------------------------
    CAPTURE_BLOCK_READY = "CAPTURE_BLOCK_READY"

    # ------------------------------------------------------------------
    # Downlink
    # ------------------------------------------------------------------
    TRANSCRIPT_DELTA = "TRANSCRIPT_DELTA"
    AUDIO_DELTA = "AUDIO_DELTA"
    INTERRUPTED = "INTERRUPTED"

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    PLAYBACK_ENDED = "PLAYBACK_ENDED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Session lifecycle
# =============================================================================

@dataclass(frozen=True)
class StartRequested(Event):
    """start() was called."""
    event_type: EventType = EventType.START_REQUESTED
    ts_ms: int = 0


@dataclass(frozen=True)
class StartFailed(Event):
    """Device acquisition or transport handshake failed during start()."""
    reason: str = ""
    event_type: EventType = EventType.START_FAILED
    ts_ms: int = 0


@dataclass(frozen=True)
class CloseRequested(Event):
    """close() was called (user or system initiated)."""
    reason: str = "user_close"
    event_type: EventType = EventType.CLOSE_REQUESTED
    ts_ms: int = 0


# =============================================================================
# Transport lifecycle
# =============================================================================

@dataclass(frozen=True)
class TransportOpened(Event):
    """Handshake with the live model completed."""
    event_type: EventType = EventType.TRANSPORT_OPENED
    ts_ms: int = 0


@dataclass(frozen=True)
class TransportClosed(Event):
    """Remote side closed the channel."""
    reason: str = ""
    event_type: EventType = EventType.TRANSPORT_CLOSED
    ts_ms: int = 0


@dataclass(frozen=True)
class TransportFailed(Event):
    """
    Mid-session transport failure.

    error wraps the underlying exception (as its __cause__) for logs and
    callers; the reducer only looks at reason.
    """
    reason: str = ""
    error: TransportError | None = None
    event_type: EventType = EventType.TRANSPORT_ERROR
    ts_ms: int = 0


# =============================================================================
# Uplink
# =============================================================================

@dataclass(frozen=True)
class CaptureBlockReady(Event):
    """One microphone block is ready for encoding."""
    block: CaptureBlock | None = None
    event_type: EventType = EventType.CAPTURE_BLOCK_READY
    ts_ms: int = 0


# =============================================================================
# Downlink
# =============================================================================

@dataclass(frozen=True)
class TranscriptDelta(Event):
    """Output transcription text fragment."""
    text: str = ""
    event_type: EventType = EventType.TRANSCRIPT_DELTA
    ts_ms: int = 0


@dataclass(frozen=True)
class AudioDelta(Event):
    """
    One model audio chunk.

    data may be raw PCM16 bytes or base64 text; mime_type carries the rate
    ("audio/pcm;rate=24000").
    """
    data: bytes | str = b""
    mime_type: str | None = None
    event_type: EventType = EventType.AUDIO_DELTA
    ts_ms: int = 0


@dataclass(frozen=True)
class Interrupted(Event):
    """The model was interrupted; in-flight playback must be flushed."""
    event_type: EventType = EventType.INTERRUPTED
    ts_ms: int = 0


# =============================================================================
# Playback
# =============================================================================

@dataclass(frozen=True)
class PlaybackEnded(Event):
    """A scheduled buffer finished playing naturally."""
    handle_id: int = 0
    event_type: EventType = EventType.PLAYBACK_ENDED
    ts_ms: int = 0


# Events the transport delivers, in arrival order
DownlinkEvent = Union[TranscriptDelta, AudioDelta, Interrupted, TransportClosed, TransportFailed]
