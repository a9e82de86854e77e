import logging
from typing import Optional

from src.providers.base import SpeechProvider
from src.schoolbuddy.config import TTS_VOICE
from src.schoolbuddy.models.exceptions import SynthesisError

logger = logging.getLogger(__name__)


class SpeechSynthesisClient:
    """
    Single request/response wrapper around the remote text-to-speech model.

    The voice is fixed per client and the response is audio only. There is
    no retry: a failed call raises SynthesisError and the caller decides how
    to recover.
    """

    def __init__(self, provider: SpeechProvider, voice_name: str = TTS_VOICE) -> None:
        self.provider = provider
        self.voice_name = voice_name

    async def synthesize(self, text: str) -> bytes:
        """
        Synthesise ``text`` and return the raw PCM payload.

        Raises:
            SynthesisError: On any provider failure or an empty payload.
        """
        logger.debug("Requesting speech for %d characters with voice '%s'", len(text), self.voice_name)
        try:
            audio: Optional[bytes] = await self.provider.synthesize_speech(text, self.voice_name)
        except SynthesisError:
            raise
        except Exception as exc:
            raise SynthesisError(f"Speech synthesis failed: {exc}", cause=exc) from exc

        if not audio:
            raise SynthesisError("Speech synthesis returned an empty payload")
        logger.debug("Received %d bytes of synthesised audio", len(audio))
        return audio
