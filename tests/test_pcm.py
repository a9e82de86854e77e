"""Tests for PCM16 decoding."""

import base64

import numpy as np
import pytest

from src.schoolbuddy.audio.pcm import decode_pcm16, duration_seconds


def test_decodes_little_endian_samples_to_unit_range() -> None:
    samples = decode_pcm16(b"\x00\x00\x00\x80\xff\x7f")

    assert samples.dtype == np.float32
    assert samples.tolist() == pytest.approx([0.0, -1.0, 32767 / 32768])


def test_accepts_base64_text_payload() -> None:
    payload = base64.b64encode(b"\x00\x40").decode("ascii")

    assert decode_pcm16(payload).tolist() == [0.5]


def test_odd_trailing_byte_is_dropped() -> None:
    samples = decode_pcm16(b"\x00\x40\x01")

    assert samples.tolist() == [0.5]


def test_empty_payload_gives_no_samples() -> None:
    assert len(decode_pcm16(b"")) == 0


def test_duration_at_default_rate() -> None:
    assert duration_seconds(np.zeros(48000, dtype=np.float32)) == 2.0
