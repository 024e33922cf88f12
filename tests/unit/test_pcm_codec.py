# pylint: disable=missing-module-docstring,missing-function-docstring

import base64

import numpy as np
import pytest

from audio.frames import CaptureBlock
from audio.pcm import (
    UplinkEncoder,
    decode_audio_delta,
    float32_to_pcm16le,
    parse_pcm_rate,
    pcm16le_to_float32,
)
from errors import DecodeMalformed
from spec import CAPTURE_BLOCK_SAMPLES, INPUT_SAMPLE_RATE_HZ, UPLINK_MIME_TYPE


def as_int16(data: bytes) -> list[int]:
    return np.frombuffer(data, dtype="<i2").tolist()


# ---------------------------------------------------------------------
# Uplink encode
# ---------------------------------------------------------------------

def test_encode_scales_by_32768():
    samples = np.array([0.0, 0.5, -0.5, -1.0], dtype=np.float32)
    assert as_int16(float32_to_pcm16le(samples)) == [0, 16384, -16384, -32768]


def test_encode_is_little_endian_two_bytes_per_sample():
    data = float32_to_pcm16le(np.array([0.5], dtype=np.float32))
    assert data == b"\x00\x40"


def test_encode_clamps_full_scale_by_default():
    samples = np.array([1.0, 1.5, -1.5], dtype=np.float32)
    assert as_int16(float32_to_pcm16le(samples)) == [32767, 32767, -32768]


def test_encode_without_clamp_wraps_positive_full_scale():
    samples = np.array([1.0], dtype=np.float32)
    assert as_int16(float32_to_pcm16le(samples, clamp=False)) == [-32768]


def test_encoder_produces_uplink_frame():
    block = CaptureBlock(
        samples=np.zeros(CAPTURE_BLOCK_SAMPLES, dtype=np.float32),
        sequence_num=7,
        ts_ms=0,
    )
    frame = UplinkEncoder().encode(block)

    assert frame.mime_type == UPLINK_MIME_TYPE == "audio/pcm;rate=16000"
    assert len(frame.data) == 2 * CAPTURE_BLOCK_SAMPLES
    assert frame.sequence_num == 7
    assert frame.duration_s == pytest.approx(CAPTURE_BLOCK_SAMPLES / INPUT_SAMPLE_RATE_HZ)

    wire = frame.to_wire()
    assert wire["mimeType"] == UPLINK_MIME_TYPE
    assert base64.b64decode(wire["data"]) == frame.data


# ---------------------------------------------------------------------
# Downlink decode
# ---------------------------------------------------------------------

def test_decode_divides_by_32768():
    data = np.array([0, 16384, -32768, 32767], dtype="<i2").tobytes()
    samples = pcm16le_to_float32(data)

    assert samples.dtype == np.float32
    assert samples.tolist() == pytest.approx([0.0, 0.5, -1.0, 32767 / 32768])


def test_round_trip_is_within_one_quantization_step():
    rng = np.random.default_rng(1234)
    original = rng.uniform(-1.0, 0.999, size=1000).astype(np.float32)

    restored = pcm16le_to_float32(float32_to_pcm16le(original))

    assert np.max(np.abs(restored - original)) <= 1.0 / 32768


def test_odd_length_payload_is_malformed():
    with pytest.raises(DecodeMalformed):
        pcm16le_to_float32(b"\x00\x01\x02")


def test_empty_payload_decodes_to_nothing():
    assert decode_audio_delta(b"", "audio/pcm;rate=24000") is None
    assert decode_audio_delta(None, "audio/pcm;rate=24000") is None
    assert decode_audio_delta("", "audio/pcm;rate=24000") is None


def test_base64_payload_is_decoded():
    pcm = np.array([100, -100], dtype="<i2").tobytes()
    buffer = decode_audio_delta(base64.b64encode(pcm).decode("ascii"), "audio/pcm;rate=24000")

    assert buffer is not None
    assert buffer.sample_rate == 24000
    assert len(buffer.samples) == 2


def test_invalid_base64_is_malformed():
    with pytest.raises(DecodeMalformed):
        decode_audio_delta("not base64 !!", "audio/pcm;rate=24000")


def test_buffer_duration_follows_declared_rate():
    pcm = b"\x00\x00" * 2400
    buffer = decode_audio_delta(pcm, "audio/pcm;rate=24000")

    assert buffer is not None
    assert buffer.duration == pytest.approx(0.1)


# ---------------------------------------------------------------------
# Mime type
# ---------------------------------------------------------------------

@pytest.mark.parametrize(
    ("mime", "rate"),
    [
        ("audio/pcm;rate=24000", 24000),
        ("audio/pcm; rate=16000", 16000),
        ("audio/pcm", 24000),
        (None, 24000),
    ],
)
def test_parse_pcm_rate(mime, rate):
    assert parse_pcm_rate(mime) == rate


@pytest.mark.parametrize("mime", ["audio/wav", "audio/pcm;rate=abc", "audio/pcm;rate=0"])
def test_parse_pcm_rate_rejects(mime):
    with pytest.raises(DecodeMalformed):
        parse_pcm_rate(mime)
