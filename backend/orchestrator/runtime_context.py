"""
Runtime execution context.

Provides Runtime with live access to session-owned imperative resources
needed for command execution (capture, encoder, transport, scheduler).

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero orchestration logic
- Zero state mutation
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from audio.frames import UplinkFrame
    from audio.pcm import UplinkEncoder
    from audio.scheduler import PlaybackScheduler
    from orchestrator.events import Event
    from session.live_session import LiveVoiceSession
    from transport.base import LiveSessionConfig


# ---------------------------------------------------------------------
# Resource Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class CaptureProtocol(Protocol):
    def open(self) -> None: ...
    def start(self) -> None: ...
    def stop(self) -> None: ...
    def close(self) -> None:
        """Release the device. Must be idempotent."""


@runtime_checkable
class OutputContextProtocol(Protocol):
    def open(self) -> None: ...
    def close(self) -> None:
        """Release the output device. Must be idempotent."""


@runtime_checkable
class TransportProtocol(Protocol):
    async def open(
        self,
        *,
        model: str,
        config: LiveSessionConfig,
        on_event: Callable[[Event], None],
    ) -> None: ...

    def send(self, frame: UplinkFrame) -> None:
        """Fire-and-forget; frames keep their call order."""

    async def close(self) -> None:
        """Idempotent; safe before or during open()."""


# ---------------------------------------------------------------------
# Runtime Execution Context
# ---------------------------------------------------------------------

class RuntimeExecutionContext:
    """
    Narrow view of a LiveVoiceSession for the Runtime.

    Resources may be None while the session is still acquiring them;
    the reducer never emits commands needing a resource before it exists.
    """

    def __init__(self, *, session: LiveVoiceSession) -> None:
        self._session = session

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def capture(self) -> CaptureProtocol | None:
        return self._session.capture

    @property
    def encoder(self) -> UplinkEncoder:
        return self._session.encoder

    @property
    def transport(self) -> TransportProtocol:
        return self._session.transport

    @property
    def scheduler(self) -> PlaybackScheduler | None:
        return self._session.scheduler

    def enqueue_control(self, msg: dict[str, Any]) -> None:
        self._session.enqueue_control(msg)

    async def release_resources(self, reason: str) -> None:
        await self._session.release_resources(reason)
