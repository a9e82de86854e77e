import logging
from typing import Callable, Optional

from src.schoolbuddy.app.event_bus import EventBus
from src.schoolbuddy.audio.pcm import decode_pcm16
from src.schoolbuddy.audio.playback_backend import PlaybackBackend, PlaybackHandle, SoundDevicePlayback
from src.schoolbuddy.audio.text_cleaner import clean_text_for_tts
from src.schoolbuddy.config import AUDIO_SAMPLE_RATE
from src.schoolbuddy.models.event_types import (
    AUDIO_PLAYBACK_FAILED,
    AUDIO_PLAYBACK_STARTED,
    AUDIO_PLAYBACK_STOPPED,
)
from src.schoolbuddy.models.events import Event
from src.schoolbuddy.models.exceptions import SynthesisError
from src.schoolbuddy.models.playback import IDLE_PLAYBACK, PlaybackState
from src.schoolbuddy.services.speech_synthesis_client import SpeechSynthesisClient

logger = logging.getLogger(__name__)


class AudioPlaybackController:
    """
    Reads chat messages aloud, one at a time.

    The controller owns the output backend (acquired on first use, released
    by ``close()``) and at most one live PlaybackHandle. Every ``play`` and
    ``stop`` bumps a play token so a synthesis or completion callback that
    belongs to an older request can recognise itself as stale and do nothing.
    """

    def __init__(
        self,
        synthesis_client: SpeechSynthesisClient,
        backend_factory: Callable[[], PlaybackBackend] = SoundDevicePlayback,
        event_bus: Optional[EventBus] = None,
        sample_rate: int = AUDIO_SAMPLE_RATE,
    ) -> None:
        self.synthesis_client = synthesis_client
        self.event_bus = event_bus
        self.sample_rate = sample_rate
        self._backend_factory = backend_factory
        self._backend: Optional[PlaybackBackend] = None
        self._handle: Optional[PlaybackHandle] = None
        self._state: PlaybackState = IDLE_PLAYBACK
        self._play_token = 0

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def active_message_id(self) -> Optional[str]:
        return self._state.active_message_id

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def play(self, message_id: str, raw_text: str) -> None:
        """
        Toggle speech for a message.

        Playing the message that is already active stops it. Playing any other
        message stops the current one first, then synthesises, decodes and
        plays the new one. Synthesis failures leave the player idle.
        """
        if self._state.active_message_id == message_id:
            logger.debug("Toggle: stopping audio for message %s", message_id)
            self.stop()
            return

        self.stop()
        token = self._play_token
        self._state = PlaybackState(active_message_id=message_id, is_loading=True)

        text = clean_text_for_tts(raw_text)
        if not text:
            logger.info("Message %s has nothing speakable after cleaning; skipping playback.", message_id)
            self._reset_state()
            return

        try:
            payload = await self.synthesis_client.synthesize(text)
        except SynthesisError as exc:
            if token != self._play_token:
                logger.debug("Ignoring TTS error for superseded message %s: %s", message_id, exc)
                return
            logger.error("TTS error for message %s: %s", message_id, exc)
            self._reset_state()
            self._dispatch(AUDIO_PLAYBACK_FAILED, message_id=message_id, error=str(exc))
            return

        if token != self._play_token:
            logger.debug("Discarding synthesised audio for superseded message %s", message_id)
            return

        samples = decode_pcm16(payload)
        if self._handle is not None:
            raise RuntimeError("Playback handle still held while starting new audio")

        try:
            backend = self._ensure_backend()
            self._handle = backend.start(
                samples,
                self.sample_rate,
                lambda: self._on_playback_finished(token),
            )
        except Exception as exc:
            logger.error("Audio output failed for message %s: %s", message_id, exc)
            self._reset_state()
            self._dispatch(AUDIO_PLAYBACK_FAILED, message_id=message_id, error=str(exc))
            return

        self._state = PlaybackState(active_message_id=message_id, is_loading=False)
        logger.info("Playing %d samples for message %s", len(samples), message_id)
        self._dispatch(
            AUDIO_PLAYBACK_STARTED,
            message_id=message_id,
            sample_count=len(samples),
            sample_rate=self.sample_rate,
        )

    def stop(self) -> None:
        """
        Stop whatever is playing or loading. Always safe to call.
        """
        self._play_token += 1
        previous = self._state.active_message_id
        self._release_handle()
        self._reset_state()
        if previous is not None:
            self._dispatch(AUDIO_PLAYBACK_STOPPED, message_id=previous, reason="stopped")

    def close(self) -> None:
        """Stop playback and release the output device."""
        self.stop()
        if self._backend is not None:
            try:
                self._backend.close()
            finally:
                self._backend = None

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _ensure_backend(self) -> PlaybackBackend:
        if self._backend is None:
            self._backend = self._backend_factory()
        return self._backend

    def _release_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.stop()
        except Exception as exc:
            logger.debug("Ignoring error from stopping an already finished source: %s", exc)

    def _on_playback_finished(self, token: int) -> None:
        if token != self._play_token:
            return
        message_id = self._state.active_message_id
        self._release_handle()
        self._reset_state()
        logger.debug("Audio for message %s finished", message_id)
        self._dispatch(AUDIO_PLAYBACK_STOPPED, message_id=message_id, reason="finished")

    def _reset_state(self) -> None:
        self._state = IDLE_PLAYBACK

    def _dispatch(self, event_type: str, **payload) -> None:
        if self.event_bus is not None:
            self.event_bus.dispatch(Event(event_type=event_type, payload=payload))
