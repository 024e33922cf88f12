"""
Output audio context.

A sounddevice OutputStream at the downlink rate with:
- a sample-accurate clock (frames rendered / sample rate)
- a voice table of buffers, each pinned to an absolute start time
- mixing of all voices overlapping the current callback block

Voices that reach their last sample are removed and reported through
on_ended(handle_id) from the PortAudio thread. The playback scheduler
decides what to play and when; this module only renders.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np
import sounddevice as sd

from errors import PlaybackError, classify_device_error
from observability.logger import log_event
from spec import AUDIO_CHANNELS, OUTPUT_BLOCK_FRAMES, OUTPUT_SAMPLE_RATE_HZ


EndedCallback = Callable[[int], None]


@dataclass
class _Voice:
    start_frame: int
    samples: np.ndarray


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class SoundDeviceOutputContext:
    """
    Speaker output with its own timeline.

    Lifecycle: open() -> play()/stop()* -> close(). close() is idempotent.
    """

    def __init__(
        self,
        *,
        on_ended: EndedCallback,
        sample_rate_hz: int = OUTPUT_SAMPLE_RATE_HZ,
        block_frames: int = OUTPUT_BLOCK_FRAMES,
        device: int | None = None,
    ) -> None:
        self._on_ended = on_ended
        self._sample_rate_hz = sample_rate_hz
        self._block_frames = block_frames
        self._device = device

        self._stream: sd.OutputStream | None = None
        self._lock = threading.Lock()
        self._voices: dict[int, _Voice] = {}
        self._frames_rendered = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """
        Acquire the output device and start the clock.

        Raises:
            DeviceUnavailable if PortAudio refuses.
        """
        if self._stream is not None:
            return
        try:
            stream = sd.OutputStream(
                samplerate=self._sample_rate_hz,
                blocksize=self._block_frames,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                device=self._device,
                callback=self._callback,
            )
        except (sd.PortAudioError, ValueError) as exc:
            raise classify_device_error(exc) from exc

        try:
            stream.start()
        except sd.PortAudioError as exc:
            stream.close()
            raise classify_device_error(exc) from exc

        self._stream = stream
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "OUTPUT_OPENED",
            "device": self._device,
            "sample_rate_hz": self._sample_rate_hz,
        })

    def close(self) -> None:
        """Stop rendering and release the device. Safe to call repeatedly."""
        stream, self._stream = self._stream, None
        with self._lock:
            self._voices.clear()
        if stream is None:
            return
        try:
            stream.abort()
        finally:
            stream.close()
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "OUTPUT_CLOSED",
                "frames_rendered": self._frames_rendered,
            })

    # ------------------------------------------------------------------
    # OutputContext
    # ------------------------------------------------------------------

    @property
    def sample_rate(self) -> int:
        return self._sample_rate_hz

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._frames_rendered / float(self._sample_rate_hz)

    def play(self, handle_id: int, samples: np.ndarray, start_time: float) -> None:
        """Schedule `samples` to begin at absolute `start_time` seconds."""
        if self._stream is None:
            raise PlaybackError("output context is closed")
        start_frame = int(round(start_time * self._sample_rate_hz))
        with self._lock:
            # A start time already in the past plays from the first sample now
            start_frame = max(start_frame, self._frames_rendered)
            self._voices[handle_id] = _Voice(
                start_frame=start_frame,
                samples=np.asarray(samples, dtype=np.float32),
            )

    def stop(self, handle_id: int) -> None:
        """Silence a voice immediately. No-op if it already ended."""
        with self._lock:
            self._voices.pop(handle_id, None)

    # ------------------------------------------------------------------
    # PortAudio thread
    # ------------------------------------------------------------------

    def _callback(self, outdata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        # pylint: disable=unused-argument
        mix = np.zeros(frames, dtype=np.float32)
        ended: list[int] = []

        with self._lock:
            block_start = self._frames_rendered
            block_end = block_start + frames

            for handle_id, voice in self._voices.items():
                voice_end = voice.start_frame + len(voice.samples)
                if voice.start_frame >= block_end:
                    continue
                lo = max(block_start, voice.start_frame)
                hi = min(block_end, voice_end)
                if hi > lo:
                    mix[lo - block_start:hi - block_start] += voice.samples[
                        lo - voice.start_frame:hi - voice.start_frame
                    ]
                if voice_end <= block_end:
                    ended.append(handle_id)

            for handle_id in ended:
                del self._voices[handle_id]

            self._frames_rendered = block_end

        outdata[:, 0] = np.clip(mix, -1.0, 1.0)

        for handle_id in ended:
            self._on_ended(handle_id)
