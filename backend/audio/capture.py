"""
Microphone capture source.

Wraps a sounddevice InputStream opened at the uplink rate. The stream is
both the capture device handle and the 16kHz input context; it is
acquired by open() and released by close().

Blocks are delivered on the PortAudio callback thread at hardware
cadence. There is no backpressure: the consumer must hand each block off
quickly (LiveVoiceSession posts it to its inbox) or lose it.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import numpy as np
import sounddevice as sd

from audio.frames import CaptureBlock
from errors import DeviceUnavailable, classify_device_error
from observability.logger import log_event
from spec import AUDIO_CHANNELS, CAPTURE_BLOCK_SAMPLES, INPUT_SAMPLE_RATE_HZ


BlockCallback = Callable[[CaptureBlock], None]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class MicrophoneCapture:
    """
    Fixed-rate, fixed-block microphone source.

    Lifecycle: open() -> start() -> stop() -> close().
    close() is idempotent and valid from any point.
    """

    def __init__(
        self,
        *,
        on_block: BlockCallback,
        sample_rate_hz: int = INPUT_SAMPLE_RATE_HZ,
        block_size: int = CAPTURE_BLOCK_SAMPLES,
        device: int | None = None,
    ) -> None:
        self._on_block = on_block
        self._sample_rate_hz = sample_rate_hz
        self._block_size = block_size
        self._device = device

        self._stream: sd.InputStream | None = None
        self._delivering = False
        self._next_seq = 1

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def open(self) -> None:
        """
        Acquire the input device.

        Raises:
            PermissionDenied / DeviceUnavailable if PortAudio refuses.
        """
        if self._stream is not None:
            return
        try:
            stream = sd.InputStream(
                samplerate=self._sample_rate_hz,
                blocksize=self._block_size,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                device=self._device,
                callback=self._callback,
            )
        except (sd.PortAudioError, ValueError) as exc:
            raise classify_device_error(exc) from exc

        self._stream = stream
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "CAPTURE_OPENED",
            "device": self._device,
            "sample_rate_hz": self._sample_rate_hz,
            "block_size": self._block_size,
        })

    def start(self) -> None:
        """Begin delivering blocks to the callback."""
        if self._stream is None:
            raise DeviceUnavailable("capture device is not open")
        self._delivering = True
        try:
            self._stream.start()
        except sd.PortAudioError as exc:
            self._delivering = False
            raise classify_device_error(exc) from exc

    def stop(self) -> None:
        """Stop delivery; the device stays acquired."""
        self._delivering = False
        if self._stream is not None and self._stream.active:
            self._stream.stop()

    def close(self) -> None:
        """Release the device. Safe to call repeatedly."""
        self._delivering = False
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            if stream.active:
                stream.abort()
        finally:
            stream.close()
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CAPTURE_CLOSED",
                "blocks_delivered": self._next_seq - 1,
            })

    # ------------------------------------------------------------------
    # PortAudio thread
    # ------------------------------------------------------------------

    def _callback(self, indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        # pylint: disable=unused-argument
        if status:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CAPTURE_STATUS",
                "status": str(status),
            })
        if not self._delivering:
            return

        # indata is reused by PortAudio after return
        samples = np.array(indata[:, 0], dtype=np.float32, copy=True)
        block = CaptureBlock(samples=samples, sequence_num=self._next_seq, ts_ms=_now_ms())
        self._next_seq += 1
        self._on_block(block)
