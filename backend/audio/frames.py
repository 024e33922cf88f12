"""
Audio frame primitives.

Pure data containers only.
No queues, no timing logic, no device access.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class CaptureBlock:
    """
    One fixed-size block of microphone audio.

    samples:
        Mono float32 samples, nominally in [-1.0, 1.0].
        Owned by the uplink encoder for the duration of one encode call.

    sequence_num:
        Monotonic capture counter (starts at 1). Observability only.

    ts_ms:
        Wall-clock timestamp when the block left the capture callback.
    """
    samples: np.ndarray
    sequence_num: int
    ts_ms: int


@dataclass(frozen=True)
class UplinkFrame:
    """
    Encoded PCM16 little-endian payload plus its format tag.

    Transmitted once; not retained after the transport accepts it.
    """
    data: bytes
    mime_type: str
    sequence_num: int = 0
    duration_s: float = 0.0

    @property
    def base64_data(self) -> str:
        """Payload as it appears in the wire envelope."""
        return base64.b64encode(self.data).decode("ascii")

    def to_wire(self) -> dict[str, str]:
        """Realtime-input media envelope: {data, mimeType}."""
        return {"data": self.base64_data, "mimeType": self.mime_type}


@dataclass(frozen=True)
class AudioBuffer:
    """Decoded float32 mono samples ready for scheduling."""
    samples: np.ndarray
    sample_rate: int

    @property
    def duration(self) -> float:
        """Buffer length in seconds."""
        return len(self.samples) / float(self.sample_rate)
