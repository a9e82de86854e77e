"""
Audio output devices.

The controller owns exactly one backend and at most one live handle; this
module only knows how to push a float32 buffer to a device and report when
it ran out.
"""
import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import numpy as np

from src.schoolbuddy.config import AUDIO_CHANNELS

logger = logging.getLogger(__name__)


class PlaybackHandle(ABC):
    """A single buffer being played."""

    @abstractmethod
    def stop(self) -> None:
        """Stops output and releases the device stream. Safe to call twice."""
        pass


class PlaybackBackend(ABC):
    """Factory for playback handles bound to one output device."""

    @abstractmethod
    def start(
        self,
        samples: np.ndarray,
        sample_rate: int,
        on_finished: Callable[[], None],
    ) -> PlaybackHandle:
        """
        Starts playing ``samples`` and returns the handle controlling it.

        ``on_finished`` is invoked on the event-loop thread when the buffer is
        exhausted. It is not invoked after an explicit ``stop()``.
        """
        pass

    def close(self) -> None:
        """Releases the device. Called once on teardown."""
        pass


class _SoundDeviceHandle(PlaybackHandle):
    def __init__(
        self,
        sd: Any,
        samples: np.ndarray,
        sample_rate: int,
        on_finished: Callable[[], None],
        device: Optional[int],
        blocksize: int,
    ) -> None:
        self._sd = sd
        self._samples = samples
        self._position = 0
        self._on_finished = on_finished
        self._stopped = threading.Event()
        self._stream = sd.OutputStream(
            device=device,
            samplerate=sample_rate,
            channels=AUDIO_CHANNELS,
            dtype="float32",
            blocksize=blocksize,
            callback=self._fill,
            finished_callback=self._stream_finished,
        )
        self._stream.start()

    def _fill(self, outdata, frames, time, status):
        if status:
            logger.debug("Audio callback status: %s", status)
        chunk = self._samples[self._position:self._position + frames]
        written = len(chunk)
        outdata[:written, 0] = chunk
        outdata[written:, 0] = 0
        self._position += written
        if written < frames:
            raise self._sd.CallbackStop

    def _stream_finished(self) -> None:
        # Runs on the PortAudio thread, also after abort().
        if not self._stopped.is_set():
            self._on_finished()

    def stop(self) -> None:
        self._stopped.set()
        try:
            self._stream.abort()
            self._stream.close()
        except Exception as exc:
            logger.debug("Ignoring error while stopping an output stream: %s", exc)


class SoundDevicePlayback(PlaybackBackend):
    """
    Playback on the default (or a chosen) PortAudio output device.

    ``sounddevice`` is imported here rather than at module level because the
    import fails on machines without PortAudio.
    """

    def __init__(self, device: Optional[int] = None, blocksize: int = 1024) -> None:
        try:
            import sounddevice as sd
        except (ImportError, OSError) as exc:
            logger.error("sounddevice is unavailable: %s", exc)
            raise RuntimeError(
                "Audio output requires the sounddevice package and a PortAudio library."
            ) from exc
        self._sd = sd
        self.device = device
        self.blocksize = blocksize
        logger.info("Audio output device acquired (device=%s).", device if device is not None else "default")

    def start(
        self,
        samples: np.ndarray,
        sample_rate: int,
        on_finished: Callable[[], None],
    ) -> PlaybackHandle:
        loop = asyncio.get_running_loop()

        def _notify() -> None:
            loop.call_soon_threadsafe(on_finished)

        return _SoundDeviceHandle(
            self._sd,
            np.ascontiguousarray(samples, dtype=np.float32),
            sample_rate,
            _notify,
            self.device,
            self.blocksize,
        )

    def close(self) -> None:
        try:
            self._sd.stop()
        except Exception as exc:
            logger.debug("Ignoring error while releasing the audio device: %s", exc)
        logger.info("Audio output device released.")
