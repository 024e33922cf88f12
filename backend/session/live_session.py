"""
Live voice session controller.

One LiveVoiceSession == one realtime voice conversation with the live
model. It owns every session resource (capture device, output context,
playback scheduler, transport) and the single inbox through which all
events reach the Runtime.

Concurrency model:
- Capture and output callbacks run on PortAudio threads; the transport
  receiver runs on the event loop. All of them only post() events.
- One pump task drains the inbox, so events are reduced strictly one at
  a time in receipt order.
- start() and close() go through the same Runtime (serialized by its
  lock), so teardown can never interleave with a half-handled event.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import TYPE_CHECKING, Any, Callable
from uuid import uuid4

from google import genai

from audio.frames import CaptureBlock
from audio.pcm import UplinkEncoder
from audio.scheduler import PlaybackScheduler
from errors import DeviceUnavailable, SessionStartError, SessionStateError
from observability.logger import log_event
from orchestrator.enums.state import SessionState
from orchestrator.enums.status import CallStatus
from orchestrator.events import (
    CaptureBlockReady,
    CloseRequested,
    Event,
    PlaybackEnded,
    StartFailed,
    StartRequested,
)
from orchestrator.runtime import Runtime
from orchestrator.runtime_context import RuntimeExecutionContext
from orchestrator.state_dataclass import SessionSnapshot
from spec import CLAMP_UPLINK_SAMPLES_DEFAULT, LIVE_MODEL
from transport.base import LiveSessionConfig
from transport.gemini_live import GeminiLiveTransport

if TYPE_CHECKING:
    from config import AppConfig
    from orchestrator.runtime_context import (
        CaptureProtocol,
        OutputContextProtocol,
        TransportProtocol,
    )


CaptureFactory = Callable[[Callable[[CaptureBlock], None]], "CaptureProtocol"]
OutputFactory = Callable[[Callable[[int], None]], "OutputContextProtocol"]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"live_{uuid4().hex[:12]}"


def sounddevice_capture_factory(device: int | None = None) -> CaptureFactory:
    """Microphone factory backed by sounddevice (imported on first use)."""

    def factory(on_block: Callable[[CaptureBlock], None]) -> CaptureProtocol:
        try:
            from audio.capture import MicrophoneCapture  # pylint: disable=import-outside-toplevel
        except OSError as exc:
            # sounddevice raises OSError when PortAudio itself is missing
            raise DeviceUnavailable(f"audio backend unavailable: {exc}") from exc
        return MicrophoneCapture(on_block=on_block, device=device)

    return factory


def sounddevice_output_factory(device: int | None = None) -> OutputFactory:
    """Speaker factory backed by sounddevice (imported on first use)."""

    def factory(on_ended: Callable[[int], None]) -> OutputContextProtocol:
        try:
            from audio.output import SoundDeviceOutputContext  # pylint: disable=import-outside-toplevel
        except OSError as exc:
            raise DeviceUnavailable(f"audio backend unavailable: {exc}") from exc
        return SoundDeviceOutputContext(on_ended=on_ended, device=device)

    return factory


# ---------------------------------------------------------------------
# LiveVoiceSession
# ---------------------------------------------------------------------

class LiveVoiceSession:
    """
    Controller for a single live voice conversation.

    Lifecycle:
        Idle --start()--> Connecting --transport open--> Active --> Closed

    Closed is terminal. A closed session is never restarted; create a
    new one.
    """

    def __init__(
        self,
        *,
        transport: TransportProtocol,
        capture_factory: CaptureFactory | None = None,
        output_factory: OutputFactory | None = None,
        model: str = LIVE_MODEL,
        live_config: LiveSessionConfig | None = None,
        clamp_uplink: bool = CLAMP_UPLINK_SAMPLES_DEFAULT,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or _new_session_id()
        self.created_at = time.time()

        self.transport = transport
        self.encoder = UplinkEncoder(clamp=clamp_uplink)
        self.model = model
        self.live_config = live_config or LiveSessionConfig()

        # Acquired by start(), released by release_resources()
        self.capture: CaptureProtocol | None = None
        self.output: OutputContextProtocol | None = None
        self.scheduler: PlaybackScheduler | None = None

        self._capture_factory = capture_factory or sounddevice_capture_factory()
        self._output_factory = output_factory or sounddevice_output_factory()

        self._inbox: asyncio.Queue[Event] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._released = False
        self._closed = asyncio.Event()

        self._control_out: deque[dict[str, Any]] = deque()

        self.runtime = Runtime(context=RuntimeExecutionContext(session=self))

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        client: genai.Client | None = None,
        system_instruction: str | None = None,
    ) -> LiveVoiceSession:
        """Build a session wired to Gemini Live and the local sound devices."""
        session_id = _new_session_id()
        if client is None:
            client = genai.Client(api_key=config.gemini_api_key)
        return cls(
            session_id=session_id,
            transport=GeminiLiveTransport(client=client, session_id=session_id),
            capture_factory=sounddevice_capture_factory(config.input_device),
            output_factory=sounddevice_output_factory(config.output_device),
            model=config.live_model,
            live_config=LiveSessionConfig(
                voice_name=config.live_voice,
                system_instruction=system_instruction,
            ),
            clamp_uplink=config.clamp_uplink_samples,
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> SessionSnapshot:
        return self.runtime.snapshot

    @property
    def state(self) -> SessionState:
        return self.runtime.snapshot.state

    @property
    def status(self) -> CallStatus:
        return self.runtime.snapshot.status

    @property
    def transcript(self) -> str:
        return self.runtime.snapshot.transcript

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "status": self.status.value,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Acquire devices, open the transport and begin streaming.

        Returns once the transport handshake completed; capture starts
        when the TransportOpened event is reduced.

        Raises:
            SessionStateError if the session was already started.
            DeviceUnavailable / PermissionDenied / TransportOpenFailed
            after every resource acquired so far has been released.
            Any other setup exception, and cancellation, propagate
            unchanged after the same unwind.
        """
        if self.state is not SessionState.IDLE:
            raise SessionStateError(f"cannot start a session in state {self.state.value}")

        self._loop = asyncio.get_running_loop()
        await self.runtime.handle_event(StartRequested(ts_ms=_now_ms()))
        if self.state is not SessionState.CONNECTING:
            # close() won the race for the runtime lock
            return

        self._pump_task = asyncio.create_task(self._pump())

        try:
            self._acquire_devices()
            await self.transport.open(
                model=self.model,
                config=self.live_config,
                on_event=self.post,
            )
        except SessionStartError as exc:
            await self._abort_start(exc)
            if self._closed_by_request():
                return
            raise
        except asyncio.CancelledError:
            await asyncio.shield(self.close("start_cancelled"))
            raise
        except Exception as exc:
            await self._abort_start(exc)
            raise

    async def close(self, reason: str = "user_close") -> None:
        """
        End the session and release everything it holds.

        Idempotent, and safe from any state (including before start()
        and while start() is still connecting).
        """
        await self.runtime.handle_event(CloseRequested(reason=reason, ts_ms=_now_ms()))
        await self._stop_pump()

    async def wait_closed(self) -> None:
        """Block until the session reaches Closed for any reason."""
        await self._closed.wait()

    async def wait_idle(self) -> None:
        """Block until every posted event has been handled."""
        await self._inbox.join()

    def post(self, event: Event) -> None:
        """
        Hand one event to the session inbox.

        Safe from any thread. Events posted after Closed are dropped.
        """
        loop = self._loop
        if loop is None or self._released:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._inbox.put_nowait(event)
            return
        try:
            loop.call_soon_threadsafe(self._inbox.put_nowait, event)
        except RuntimeError:
            # Loop already closed: a device callback fired after shutdown
            return

    # ------------------------------------------------------------------
    # Resource ownership (called by Runtime on Teardown)
    # ------------------------------------------------------------------

    async def release_resources(self, reason: str) -> None:
        """
        Release capture, transport and output, in that order.

        Each release is attempted even if an earlier one fails, so a
        teardown never leaves a device open.
        """
        if self._released:
            return
        self._released = True

        capture, self.capture = self.capture, None
        if capture is not None:
            self._guarded("capture", capture.stop)
            self._guarded("capture", capture.close)

        try:
            await self.transport.close()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log_release_error("transport", exc)

        scheduler, self.scheduler = self.scheduler, None
        if scheduler is not None:
            self._guarded("scheduler", scheduler.interrupt)

        output, self.output = self.output, None
        if output is not None:
            self._guarded("output", output.close)

        self._closed.set()
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_RESOURCES_RELEASED",
            "reason": reason,
            **self.log_context(),
        })

    # ------------------------------------------------------------------
    # Client-facing messages
    # ------------------------------------------------------------------

    def enqueue_control(self, msg: dict[str, Any]) -> None:
        """
        Buffer a status / transcript message for the UI.

        Retrieved in FIFO order via drain_control().
        """
        self._control_out.append(msg)

    def drain_control(self) -> tuple[dict[str, Any], ...]:
        """
        Atomically drain all pending UI messages.

        Returns an empty tuple if nothing is pending.
        """
        if not self._control_out:
            return ()
        out = tuple(self._control_out)
        self._control_out.clear()
        return out

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _acquire_devices(self) -> None:
        # Assigned before open() so a partial acquisition is still released
        self.capture = self._capture_factory(self._on_capture_block)
        self.capture.open()

        self.output = self._output_factory(self._on_playback_ended)
        self.output.open()

        self.scheduler = PlaybackScheduler(self.output)

    async def _abort_start(self, exc: Exception) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_START_FAILED",
            "exception": type(exc).__name__,
            "message": str(exc),
            **self.log_context(),
        })
        await self.runtime.handle_event(
            StartFailed(reason=f"{type(exc).__name__}: {exc}", ts_ms=_now_ms())
        )
        await self._stop_pump()

    def _closed_by_request(self) -> bool:
        snapshot = self.snapshot
        return (
            snapshot.state is SessionState.CLOSED
            and snapshot.status is CallStatus.ENDED
        )

    async def _pump(self) -> None:
        """Drain the inbox one event at a time until the session closes."""
        while True:
            event = await self._inbox.get()
            try:
                await self.runtime.handle_event(event)
            except SessionStartError as exc:
                # Capture failed to start after the handshake
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "CAPTURE_START_FAILED",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                    **self.log_context(),
                })
                await self.runtime.handle_event(
                    StartFailed(reason=f"{type(exc).__name__}: {exc}", ts_ms=_now_ms())
                )
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "level": "ERROR",
                    "event_type": "SESSION_FATAL_ERROR",
                    "trigger": event.event_type.value,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                    **self.log_context(),
                })
                await self.runtime.handle_event(
                    CloseRequested(reason="internal_error", ts_ms=_now_ms())
                )
            finally:
                self._inbox.task_done()

            if self.state is SessionState.CLOSED:
                self._discard_pending()
                return

    async def _stop_pump(self) -> None:
        task, self._pump_task = self._pump_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._discard_pending()

    def _discard_pending(self) -> None:
        while True:
            try:
                self._inbox.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._inbox.task_done()

    def _on_capture_block(self, block: CaptureBlock) -> None:
        self.post(CaptureBlockReady(block=block, ts_ms=block.ts_ms))

    def _on_playback_ended(self, handle_id: int) -> None:
        self.post(PlaybackEnded(handle_id=handle_id, ts_ms=_now_ms()))

    def _guarded(self, resource: str, release: Callable[[], Any]) -> None:
        try:
            release()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log_release_error(resource, exc)

    def _log_release_error(self, resource: str, exc: Exception) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "level": "ERROR",
            "event_type": "RESOURCE_RELEASE_ERROR",
            "resource": resource,
            "exception": type(exc).__name__,
            "message": str(exc),
            **self.log_context(),
        })
