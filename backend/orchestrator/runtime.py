"""
Runtime execution shell for a single live voice session.

Responsibilities:
- Own the session snapshot
- Call the pure reducer
- Execute commands with side effects (capture, uplink, playback, teardown)
- Contain steady-state decode / playback errors per event

Non-responsibilities:
- Resource acquisition (LiveVoiceSession.start)
- Event queueing (LiveVoiceSession inbox)
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from audio.pcm import decode_audio_delta
from errors import DecodeMalformed, PlaybackError
from observability.logger import log_event
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
from orchestrator.events import Event
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import SessionSnapshot

if TYPE_CHECKING:
    from orchestrator.runtime_context import RuntimeExecutionContext


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class Runtime:
    """
    Runtime execution boundary for a single live voice session.

    Guarantees:
    - Reducer is always called exactly once per incoming event
    - handle_event() calls are serialized: one event (and all of its
      commands) completes before the next one is reduced
    - All side effects occur *after* the snapshot has been updated
    - Commands run in reducer-emitted order
    """

    def __init__(
        self,
        *,
        context: RuntimeExecutionContext,
        initial_snapshot: SessionSnapshot | None = None,
    ) -> None:
        self._ctx = context
        self._snapshot = initial_snapshot or SessionSnapshot()
        self._lock = asyncio.Lock()

    @property
    def snapshot(self) -> SessionSnapshot:
        """
        Current immutable session snapshot.

        Only Runtime replaces it; consumers treat it as read-only.
        """
        return self._snapshot

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the reducer and execute its commands.

        This is the *only* entry point for events affecting session state.
        """
        async with self._lock:
            new_snapshot, commands = reduce(self._snapshot, event)
            self._snapshot = new_snapshot

            for cmd in commands:
                await self._execute_command(cmd)

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._ctx.session_id,
            })

        elif isinstance(cmd, SendUplink):
            frame = self._ctx.encoder.encode(cmd.block)
            self._ctx.transport.send(frame)

        elif isinstance(cmd, PlayAudio):
            self._play_audio(cmd)

        elif isinstance(cmd, InterruptPlayback):
            scheduler = self._ctx.scheduler
            stopped = scheduler.interrupt() if scheduler is not None else 0
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "PLAYBACK_INTERRUPTED",
                "session_id": self._ctx.session_id,
                "handles_stopped": stopped,
            })

        elif isinstance(cmd, ReleasePlayback):
            scheduler = self._ctx.scheduler
            if scheduler is not None:
                scheduler.release(cmd.handle_id)

        elif isinstance(cmd, SendToClient):
            self._ctx.enqueue_control(cmd.message)

        elif isinstance(cmd, StartCapture):
            capture = self._ctx.capture
            assert capture is not None, "capture device missing"
            capture.start()
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CAPTURE_STARTED",
                "session_id": self._ctx.session_id,
            })

        elif isinstance(cmd, Teardown):
            await self._ctx.release_resources(cmd.reason)

        else:
            raise TypeError(f"Unknown command: {cmd!r}")

    def _play_audio(self, cmd: PlayAudio) -> None:
        """Decode + schedule one audio delta; failures skip only this event."""
        scheduler = self._ctx.scheduler
        if scheduler is None:
            return

        try:
            buffer = decode_audio_delta(cmd.data, cmd.mime_type)
            if buffer is None or len(buffer.samples) == 0:
                return
            scheduler.schedule(buffer)
        except (DecodeMalformed, PlaybackError) as exc:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "AUDIO_DELTA_SKIPPED",
                "session_id": self._ctx.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
