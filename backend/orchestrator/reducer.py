"""
Pure live session reducer.

(snapshot, event) -> (new_snapshot, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).

Transition table:

    IDLE        + StartRequested   -> CONNECTING
    CONNECTING  + TransportOpened  -> ACTIVE      (StartCapture)
    ACTIVE      + CaptureBlockReady               (SendUplink)
    ACTIVE      + TranscriptDelta                 (append transcript)
    ACTIVE      + AudioDelta                      (PlayAudio)
    ACTIVE      + Interrupted                     (InterruptPlayback)
    ACTIVE      + PlaybackEnded                   (ReleasePlayback)
    not CLOSED  + TransportClosed  -> CLOSED      (Teardown, status ended)
    not CLOSED  + TransportFailed  -> CLOSED      (Teardown, status error)
    not CLOSED  + StartFailed      -> CLOSED      (Teardown, status error)
    not CLOSED  + CloseRequested   -> CLOSED      (Teardown, status ended)
    CLOSED      + *                -> ignore
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from orchestrator.commands import (
    Command,
    InterruptPlayback,
    LogEvent,
    PlayAudio,
    ReleasePlayback,
    SendToClient,
    SendUplink,
    StartCapture,
    Teardown,
)
from orchestrator.enums.state import SessionState
from orchestrator.enums.status import CallStatus
from orchestrator.events import (
    AudioDelta,
    CaptureBlockReady,
    CloseRequested,
    Event,
    Interrupted,
    PlaybackEnded,
    StartFailed,
    StartRequested,
    TranscriptDelta,
    TransportClosed,
    TransportFailed,
    TransportOpened,
)
from orchestrator.state_dataclass import SessionSnapshot
from spec import TRANSCRIPT_SEPARATOR


Result = tuple[SessionSnapshot, tuple[Command, ...]]


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    snapshot: SessionSnapshot,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "state": snapshot.state.value,
            "status": snapshot.status.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "details": details or {},
        }
    )


def _ignore(snapshot: SessionSnapshot, event: Event, reason: str) -> Result:
    return snapshot, (_log(snapshot, event, "ignore", {"reason": reason}),)


def _status_message(snapshot: SessionSnapshot) -> SendToClient:
    return SendToClient(
        message={
            "type": "STATUS",
            "status": snapshot.status.value,
            "state": snapshot.state.value,
            "error": snapshot.last_error,
        }
    )


def _transition(
    snapshot: SessionSnapshot,
    event: Event,
    new_snapshot: SessionSnapshot,
    commands: tuple[Command, ...] = (),
    source: str = "",
) -> Result:
    """
    Apply a state change: side-effect commands first, then the UI status
    message, then the state_changed log.
    """
    return new_snapshot, commands + (
        _status_message(new_snapshot),
        _log(
            new_snapshot,
            event,
            "state_changed",
            {
                "from_state": snapshot.state.value,
                "to_state": new_snapshot.state.value,
                "source": source,
            },
        ),
    )


def _close(
    snapshot: SessionSnapshot,
    event: Event,
    *,
    status: CallStatus,
    reason: str,
    error: str | None = None,
) -> Result:
    new_snapshot = replace(
        snapshot,
        state=SessionState.CLOSED,
        status=status,
        last_error=error if error is not None else snapshot.last_error,
        close_reason=reason,
    )
    return _transition(
        snapshot,
        event,
        new_snapshot,
        (Teardown(reason=reason),),
        source=reason,
    )


def _append_transcript(transcript: str, text: str) -> str:
    if not transcript:
        return text
    return transcript + TRANSCRIPT_SEPARATOR + text


# =============================================================================
# Per-event handlers
# =============================================================================

def _on_start_requested(snapshot: SessionSnapshot, event: StartRequested) -> Result:
    if snapshot.state is not SessionState.IDLE:
        return _ignore(snapshot, event, "already_started")
    new_snapshot = replace(
        snapshot,
        state=SessionState.CONNECTING,
        status=CallStatus.CONNECTING,
    )
    return _transition(snapshot, event, new_snapshot, source="start")


def _on_transport_opened(snapshot: SessionSnapshot, event: TransportOpened) -> Result:
    if snapshot.state is not SessionState.CONNECTING:
        return _ignore(snapshot, event, "not_connecting")
    new_snapshot = replace(
        snapshot,
        state=SessionState.ACTIVE,
        status=CallStatus.LISTENING,
    )
    return _transition(
        snapshot,
        event,
        new_snapshot,
        (StartCapture(),),
        source="transport_open",
    )


def _on_capture_block(snapshot: SessionSnapshot, event: CaptureBlockReady) -> Result:
    if snapshot.state is not SessionState.ACTIVE:
        return _ignore(snapshot, event, "not_active")
    if event.block is None:
        return _ignore(snapshot, event, "empty_block")
    # Hot path: no log per block
    return snapshot, (SendUplink(block=event.block),)


def _on_transcript_delta(snapshot: SessionSnapshot, event: TranscriptDelta) -> Result:
    if snapshot.state is not SessionState.ACTIVE:
        return _ignore(snapshot, event, "not_active")
    if not event.text:
        return _ignore(snapshot, event, "empty_text")
    transcript = _append_transcript(snapshot.transcript, event.text)
    new_snapshot = replace(snapshot, transcript=transcript)
    return new_snapshot, (
        SendToClient(message={"type": "TRANSCRIPT", "text": transcript, "delta": event.text}),
    )


def _on_audio_delta(snapshot: SessionSnapshot, event: AudioDelta) -> Result:
    if snapshot.state is not SessionState.ACTIVE:
        return _ignore(snapshot, event, "not_active")
    return snapshot, (PlayAudio(data=event.data, mime_type=event.mime_type),)


def _on_interrupted(snapshot: SessionSnapshot, event: Interrupted) -> Result:
    if snapshot.state is not SessionState.ACTIVE:
        return _ignore(snapshot, event, "not_active")
    return snapshot, (
        InterruptPlayback(),
        _log(snapshot, event, "interrupt_playback"),
    )


def _on_playback_ended(snapshot: SessionSnapshot, event: PlaybackEnded) -> Result:
    if snapshot.state is not SessionState.ACTIVE:
        return _ignore(snapshot, event, "not_active")
    return snapshot, (ReleasePlayback(handle_id=event.handle_id),)


# =============================================================================
# Reducer entry point
# =============================================================================

def reduce(snapshot: SessionSnapshot, event: Event) -> Result:
    """
    Compute the next snapshot and the side effects for one event.
    """
    if snapshot.state is SessionState.CLOSED:
        return _ignore(snapshot, event, "session_closed")

    if isinstance(event, StartRequested):
        return _on_start_requested(snapshot, event)

    if isinstance(event, TransportOpened):
        return _on_transport_opened(snapshot, event)

    if isinstance(event, CaptureBlockReady):
        return _on_capture_block(snapshot, event)

    if isinstance(event, TranscriptDelta):
        return _on_transcript_delta(snapshot, event)

    if isinstance(event, AudioDelta):
        return _on_audio_delta(snapshot, event)

    if isinstance(event, Interrupted):
        return _on_interrupted(snapshot, event)

    if isinstance(event, PlaybackEnded):
        return _on_playback_ended(snapshot, event)

    if isinstance(event, TransportClosed):
        return _close(
            snapshot,
            event,
            status=CallStatus.ENDED,
            reason=event.reason or "transport_closed",
        )

    if isinstance(event, TransportFailed):
        return _close(
            snapshot,
            event,
            status=CallStatus.ERROR,
            reason="transport_error",
            error=event.reason,
        )

    if isinstance(event, StartFailed):
        return _close(
            snapshot,
            event,
            status=CallStatus.ERROR,
            reason="start_failed",
            error=event.reason,
        )

    if isinstance(event, CloseRequested):
        return _close(
            snapshot,
            event,
            status=CallStatus.ENDED,
            reason=event.reason,
        )

    return _ignore(snapshot, event, "unhandled_event")
