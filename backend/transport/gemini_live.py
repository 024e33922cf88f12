"""
Gemini Live transport (google-genai async client).

Role in the system:
- Opens one live session per LiveVoiceSession.
- Writes uplink PCM frames in order from a bounded outbox.
- Translates every LiveServerMessage into downlink events, in order.

Architectural constraints:
- send() is synchronous and fire-and-forget (no acknowledgements).
- Exactly one terminal event (TransportClosed / TransportFailed) is
  emitted, and none after close().
- No retries and no reconnects; the session controller decides.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from google import genai
from google.genai import types
from websockets.exceptions import ConnectionClosedOK

from audio.frames import UplinkFrame
from audio.queues import UplinkFrameQueue
from errors import TransportError, TransportOpenFailed
from observability.logger import log_event
from observability.metrics import timed
from orchestrator.events import (
    AudioDelta,
    Event,
    Interrupted,
    TranscriptDelta,
    TransportClosed,
    TransportFailed,
    TransportOpened,
)
from spec import DOWNLINK_MIME_TYPE, UPLINK_OUTBOX_MAX_S
from transport.base import DuplexTransport, EventSink, LiveSessionConfig


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


# ---------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------

def build_connect_config(config: LiveSessionConfig) -> types.LiveConnectConfig:
    """Translate LiveSessionConfig into the SDK connect config."""
    return types.LiveConnectConfig(
        response_modalities=[types.Modality(config.response_modality)],
        speech_config=types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(
                    voice_name=config.voice_name,
                ),
            ),
        ),
        output_audio_transcription=(
            types.AudioTranscriptionConfig() if config.output_transcription else None
        ),
        system_instruction=config.system_instruction,
    )


def downlink_events(message: Any) -> list[Event]:
    """
    Convert one server message into downlink events.

    Order within a message: transcription text, each inline audio part,
    then the interruption signal.
    """
    content = getattr(message, "server_content", None)
    if content is None:
        return []

    ts_ms = _now_ms()
    events: list[Event] = []

    transcription = getattr(content, "output_transcription", None)
    if transcription is not None and transcription.text:
        events.append(TranscriptDelta(text=transcription.text, ts_ms=ts_ms))

    model_turn = getattr(content, "model_turn", None)
    parts = (model_turn.parts or []) if model_turn is not None else []
    for part in parts:
        inline = getattr(part, "inline_data", None)
        if inline is not None and inline.data:
            events.append(
                AudioDelta(
                    data=inline.data,
                    mime_type=inline.mime_type or DOWNLINK_MIME_TYPE,
                    ts_ms=ts_ms,
                )
            )

    if getattr(content, "interrupted", False):
        events.append(Interrupted(ts_ms=ts_ms))

    return events


# ---------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------

class GeminiLiveTransport(DuplexTransport):
    """
    DuplexTransport over `client.aio.live.connect`.

    Design:
    - One sender task draining UplinkFrameQueue
    - One receiver task iterating session.receive()
    - close() cancels both and exits the SDK context manager
    """

    def __init__(
        self,
        *,
        client: genai.Client,
        session_id: str = "",
        max_outbox_s: float = UPLINK_OUTBOX_MAX_S,
    ) -> None:
        self._client = client
        self._session_id = session_id

        self._outbox = UplinkFrameQueue(max_depth_s=max_outbox_s)
        self._outbox_ready = asyncio.Event()

        self._on_event: EventSink | None = None
        self._session_cm: Any = None
        self._session: Any = None
        self._tx_task: asyncio.Task[None] | None = None
        self._rx_task: asyncio.Task[None] | None = None

        self._closed = False
        self._terminal_emitted = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def open(self, *, model: str, config: LiveSessionConfig, on_event: EventSink) -> None:
        if self._closed:
            raise TransportOpenFailed("transport closed before open")
        if self._session is not None:
            raise TransportOpenFailed("transport already open")

        self._on_event = on_event
        session_cm = self._client.aio.live.connect(
            model=model,
            config=build_connect_config(config),
        )

        try:
            with timed("live_handshake", session_id=self._session_id, details={"model": model}):
                session = await session_cm.__aenter__()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise TransportOpenFailed(f"{type(exc).__name__}: {exc}") from exc

        self._session_cm = session_cm
        self._session = session

        # close() raced the handshake
        if self._closed:
            await self._exit_session()
            raise TransportOpenFailed("transport closed during open")

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "TRANSPORT_OPENED",
            "session_id": self._session_id,
            "model": model,
            "voice": config.voice_name,
        })
        self._emit(TransportOpened(ts_ms=_now_ms()))

        self._tx_task = asyncio.create_task(self._send_loop())
        self._rx_task = asyncio.create_task(self._receive_loop())

    def send(self, frame: UplinkFrame) -> None:
        if self._closed or self._session is None:
            return
        if not self._outbox.enqueue(frame):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "UPLINK_FRAME_DROPPED",
                "session_id": self._session_id,
                "sequence_num": frame.sequence_num,
                **self._outbox.snapshot(),
            })
            return
        self._outbox_ready.set()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        current = asyncio.current_task()
        tasks = [
            t for t in (self._tx_task, self._rx_task)
            if t is not None and t is not current
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._outbox.clear()
        await self._exit_session()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "TRANSPORT_CLOSED",
            "session_id": self._session_id,
            "dropped_overflow": self._outbox.drops.overflow,
        })

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _emit(self, event: Event) -> None:
        if self._closed or self._on_event is None:
            return
        if isinstance(event, (TransportClosed, TransportFailed)):
            if self._terminal_emitted:
                return
            self._terminal_emitted = True
        self._on_event(event)

    def _fail(self, stage: str, exc: Exception) -> None:
        error = TransportError(f"{stage} failed: {type(exc).__name__}: {exc}")
        error.__cause__ = exc
        log_event({
            "ts_ms": _now_ms(),
            "event_type": f"TRANSPORT_{stage.upper()}_ERROR",
            "session_id": self._session_id,
            "exception": type(exc).__name__,
            "message": str(exc),
        })
        self._emit(TransportFailed(reason=str(error), error=error, ts_ms=_now_ms()))

    async def _exit_session(self) -> None:
        session_cm, self._session_cm = self._session_cm, None
        self._session = None
        if session_cm is None:
            return
        try:
            await session_cm.__aexit__(None, None, None)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "TRANSPORT_EXIT_ERROR",
                "session_id": self._session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    async def _send_loop(self) -> None:
        """Write queued frames in FIFO order until cancelled."""
        session = self._session
        try:
            while True:
                frame = self._outbox.dequeue()
                if frame is None:
                    self._outbox_ready.clear()
                    await self._outbox_ready.wait()
                    continue
                await session.send_realtime_input(
                    audio=types.Blob(data=frame.data, mime_type=frame.mime_type),
                )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._fail("send", exc)

    async def _receive_loop(self) -> None:
        """
        Iterate server messages until the channel ends.

        session.receive() yields one model turn per iteration; an
        iteration that yields nothing means the stream is over.
        """
        session = self._session
        try:
            while True:
                received = False
                async for message in session.receive():
                    received = True
                    for event in downlink_events(message):
                        self._emit(event)
                if not received:
                    self._emit(TransportClosed(reason="stream_ended", ts_ms=_now_ms()))
                    return
        except asyncio.CancelledError:
            raise
        except ConnectionClosedOK as exc:
            self._emit(TransportClosed(reason=f"remote_close: {exc}", ts_ms=_now_ms()))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._fail("receive", exc)
