"""PCM conversion utilities (uplink encode, downlink decode)."""

from __future__ import annotations

import base64
import binascii

import numpy as np

from audio.frames import AudioBuffer, CaptureBlock, UplinkFrame
from errors import DecodeMalformed
from spec import (
    AUDIO_SAMPLE_WIDTH_BYTES,
    INPUT_SAMPLE_RATE_HZ,
    OUTPUT_SAMPLE_RATE_HZ,
    PCM16_MAX,
    PCM16_MIN,
    PCM16_SCALE,
    PCM_MIME_PREFIX,
    UPLINK_MIME_TYPE,
)


def float32_to_pcm16le(samples: np.ndarray, *, clamp: bool = True) -> bytes:
    """
    Convert normalized float samples to PCM16 little-endian bytes.

    Each sample becomes rint(s * 32768). With clamp=False values outside
    the int16 range wrap around (bit-compatible with a typed-array store);
    with clamp=True they saturate at -32768 / 32767.
    """
    scaled = np.rint(np.asarray(samples, dtype=np.float64) * PCM16_SCALE).astype(np.int64)
    if clamp:
        scaled = np.clip(scaled, PCM16_MIN, PCM16_MAX)
    # int64 -> int16 keeps the low 16 bits (wraparound when unclamped)
    return scaled.astype("<i2").tobytes()


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0).

    No resampling. No channel mixing.

    Raises:
        DecodeMalformed if the payload holds a partial sample.
    """
    if len(pcm_bytes) % AUDIO_SAMPLE_WIDTH_BYTES != 0:
        raise DecodeMalformed(
            f"PCM16 payload has odd length ({len(pcm_bytes)} bytes)"
        )

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")  # little-endian int16
    return audio_i16.astype(np.float32) / np.float32(PCM16_SCALE)


def parse_pcm_rate(mime_type: str | None, default: int = OUTPUT_SAMPLE_RATE_HZ) -> int:
    """
    Extract the sample rate from an "audio/pcm;rate=NNNN" mime type.

    A missing mime type or missing rate parameter yields `default`.

    Raises:
        DecodeMalformed for a non-PCM type or an unparseable rate.
    """
    if not mime_type:
        return default

    parts = [p.strip() for p in mime_type.split(";")]
    if parts[0].lower() != PCM_MIME_PREFIX:
        raise DecodeMalformed(f"unsupported audio mime type: {mime_type!r}")

    for param in parts[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "rate":
            try:
                rate = int(value.strip())
            except ValueError as exc:
                raise DecodeMalformed(f"bad rate in mime type: {mime_type!r}") from exc
            if rate <= 0:
                raise DecodeMalformed(f"bad rate in mime type: {mime_type!r}")
            return rate

    return default


class UplinkEncoder:
    """
    CaptureBlock -> UplinkFrame.

    Deterministic and side-effect free; one call per block, in block order.
    """

    def __init__(
        self,
        *,
        clamp: bool = True,
        sample_rate_hz: int = INPUT_SAMPLE_RATE_HZ,
        mime_type: str = UPLINK_MIME_TYPE,
    ) -> None:
        self._clamp = clamp
        self._sample_rate_hz = sample_rate_hz
        self._mime_type = mime_type

    def encode(self, block: CaptureBlock) -> UplinkFrame:
        """Encode one capture block into a PCM16 uplink frame."""
        return UplinkFrame(
            data=float32_to_pcm16le(block.samples, clamp=self._clamp),
            mime_type=self._mime_type,
            sequence_num=block.sequence_num,
            duration_s=len(block.samples) / float(self._sample_rate_hz),
        )


def decode_audio_delta(data: bytes | str | None, mime_type: str | None) -> AudioBuffer | None:
    """
    Decode one downlink audio payload.

    `data` may be raw bytes (as delivered by the SDK) or base64 text
    (as it appears on the wire).

    Returns:
        None for an empty payload (nothing to schedule).

    Raises:
        DecodeMalformed if the payload is not valid PCM16.
    """
    if not data:
        return None

    if isinstance(data, str):
        try:
            data = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecodeMalformed("audio payload is not valid base64") from exc
        if not data:
            return None

    sample_rate = parse_pcm_rate(mime_type)
    samples = pcm16le_to_float32(bytes(data))
    return AudioBuffer(samples=samples, sample_rate=sample_rate)
