import base64
import logging
from typing import Union

import numpy as np

from src.schoolbuddy.config import AUDIO_SAMPLE_RATE, PCM_SCALE

logger = logging.getLogger(__name__)


def decode_pcm16(payload: Union[bytes, bytearray, str]) -> np.ndarray:
    """
    Decode raw little-endian 16-bit signed mono PCM into float32 samples.

    Each sample is divided by 32768 so the result lies in [-1.0, 1.0).

    Args:
        payload: Raw PCM bytes, or the same bytes base64-encoded as text.

    Returns:
        A 1-D float32 array with one value per sample.
    """
    raw = base64.b64decode(payload) if isinstance(payload, str) else bytes(payload)
    if len(raw) % 2:
        logger.warning("PCM payload has an odd length (%d bytes); dropping the trailing byte.", len(raw))
        raw = raw[:-1]
    samples = np.frombuffer(raw, dtype="<i2")
    return samples.astype(np.float32) / np.float32(PCM_SCALE)


def duration_seconds(samples: np.ndarray, sample_rate: int = AUDIO_SAMPLE_RATE) -> float:
    return len(samples) / float(sample_rate)
