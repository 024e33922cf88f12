# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any

import numpy as np
import pytest

import orchestrator.runtime as runtime_mod
from audio.frames import CaptureBlock
from audio.pcm import UplinkEncoder
from audio.scheduler import PlaybackScheduler
from orchestrator.enums.state import SessionState
from orchestrator.events import (
    AudioDelta,
    CaptureBlockReady,
    CloseRequested,
    Interrupted,
    TranscriptDelta,
)
from orchestrator.runtime import Runtime
from orchestrator.state_dataclass import SessionSnapshot


class FakeOutput:
    sample_rate = 24000

    def __init__(self) -> None:
        self.current_time = 0.0
        self.played: list[int] = []
        self.stopped: list[int] = []

    def play(self, handle_id, samples, start_time):
        self.played.append(handle_id)

    def stop(self, handle_id):
        self.stopped.append(handle_id)


class FakeTransport:
    def __init__(self) -> None:
        self.sent = []

    def send(self, frame):
        self.sent.append(frame)


class FakeContext:
    def __init__(self) -> None:
        self.session_id = "live_test"
        self.capture = None
        self.encoder = UplinkEncoder()
        self.transport = FakeTransport()
        self.output = FakeOutput()
        self.scheduler = PlaybackScheduler(self.output)
        self.control: list[dict[str, Any]] = []
        self.released: list[str] = []

    def enqueue_control(self, msg):
        self.control.append(msg)

    async def release_resources(self, reason):
        self.released.append(reason)


def active_runtime(ctx: FakeContext) -> Runtime:
    return Runtime(
        context=ctx,
        initial_snapshot=SessionSnapshot(state=SessionState.ACTIVE),
    )


@pytest.fixture(name="logs")
def fixture_logs(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(runtime_mod, "log_event", emitted.append)
    return emitted


def test_capture_block_is_encoded_and_sent(logs):
    ctx = FakeContext()
    runtime = active_runtime(ctx)
    samples = np.full(4096, 0.5, dtype=np.float32)

    asyncio.run(runtime.handle_event(
        CaptureBlockReady(block=CaptureBlock(samples=samples, sequence_num=3, ts_ms=0))
    ))

    assert len(ctx.transport.sent) == 1
    frame = ctx.transport.sent[0]
    assert frame.mime_type == "audio/pcm;rate=16000"
    assert frame.sequence_num == 3
    assert frame.data[:2] == b"\x00\x40"
    assert logs == []


def test_audio_delta_is_scheduled(logs):
    ctx = FakeContext()
    runtime = active_runtime(ctx)

    asyncio.run(runtime.handle_event(
        AudioDelta(data=b"\x00\x00" * 2400, mime_type="audio/pcm;rate=24000")
    ))

    assert ctx.output.played == [1]
    assert ctx.scheduler.cursor == pytest.approx(0.1)
    assert logs == []


def test_malformed_audio_is_skipped_and_session_continues(logs):
    ctx = FakeContext()
    runtime = active_runtime(ctx)

    async def scenario() -> None:
        await runtime.handle_event(AudioDelta(data=b"\x00\x00\x00", mime_type="audio/pcm;rate=24000"))
        await runtime.handle_event(AudioDelta(data=b"\x00\x00" * 240, mime_type="audio/pcm;rate=24000"))

    asyncio.run(scenario())

    assert runtime.snapshot.state is SessionState.ACTIVE
    assert ctx.output.played == [1]
    assert [e["event_type"] for e in logs] == ["AUDIO_DELTA_SKIPPED"]
    assert logs[0]["exception"] == "DecodeMalformed"


def test_interrupt_stops_all_active_handles(logs):
    ctx = FakeContext()
    runtime = active_runtime(ctx)

    async def scenario() -> None:
        for _ in range(3):
            await runtime.handle_event(AudioDelta(data=b"\x00\x00" * 240, mime_type="audio/pcm;rate=24000"))
        await runtime.handle_event(Interrupted())

    asyncio.run(scenario())

    assert sorted(ctx.output.stopped) == [1, 2, 3]
    assert len(ctx.scheduler) == 0
    assert ctx.scheduler.cursor == 0.0
    interrupted = [e for e in logs if e["event_type"] == "PLAYBACK_INTERRUPTED"]
    assert interrupted[0]["handles_stopped"] == 3


def test_transcript_reaches_client_queue(logs):
    ctx = FakeContext()
    runtime = active_runtime(ctx)

    asyncio.run(runtime.handle_event(TranscriptDelta(text="hi")))

    assert ctx.control == [{"type": "TRANSCRIPT", "text": "hi", "delta": "hi"}]
    assert runtime.snapshot.transcript == "hi"


def test_close_runs_teardown_once(logs):
    ctx = FakeContext()
    runtime = active_runtime(ctx)

    async def scenario() -> None:
        await runtime.handle_event(CloseRequested(reason="user_close"))
        await runtime.handle_event(CloseRequested(reason="again"))

    asyncio.run(scenario())

    assert ctx.released == ["user_close"]
    assert runtime.snapshot.state is SessionState.CLOSED
    assert all(e.get("session_id") == "live_test" for e in logs)
