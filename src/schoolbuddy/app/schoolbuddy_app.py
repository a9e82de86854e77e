import logging
from typing import Awaitable, Callable, Optional

from src.providers.gemini_provider import GeminiProvider
from src.schoolbuddy.app.event_bus import EventBus
from src.schoolbuddy.audio.playback_backend import PlaybackBackend, SoundDevicePlayback
from src.schoolbuddy.config import CHAT_MODEL, VIDEO_POLL_TIMEOUT
from src.schoolbuddy.models.event_types import (
    AUDIO_PLAYBACK_FAILED,
    MODEL_STREAM_FAILED,
    VIDEO_JOB_STATUS_CHANGED,
)
from src.schoolbuddy.models.events import Event
from src.schoolbuddy.prompts.prompt_manager import PromptManager
from src.schoolbuddy.services.audio_playback_controller import AudioPlaybackController
from src.schoolbuddy.services.chat_orchestrator import ChatOrchestrator
from src.schoolbuddy.services.conversation_session import ConversationSession
from src.schoolbuddy.services.credential_service import SettingsCredentialProvider
from src.schoolbuddy.services.logging_service import LoggingService
from src.schoolbuddy.services.speech_synthesis_client import SpeechSynthesisClient
from src.schoolbuddy.services.user_settings_manager import get_google_api_key, load_user_settings
from src.schoolbuddy.services.video_animator_orchestrator import VideoAnimatorOrchestrator

logger = logging.getLogger(__name__)


class SchoolBuddyApp:
    """
    The composition root: builds every service and wires them together.
    """

    def __init__(
        self,
        provider: Optional[GeminiProvider] = None,
        backend_factory: Callable[[], PlaybackBackend] = SoundDevicePlayback,
        credential_selector: Optional[Callable[[], Awaitable[None]]] = None,
        configure_logging: bool = True,
    ):
        if configure_logging:
            LoggingService.setup_logging()
        logger.info("Initializing SchoolBuddyApp...")

        self.settings = load_user_settings()
        self.event_bus = EventBus()
        self.provider = provider if provider is not None else GeminiProvider(
            api_key=get_google_api_key(self.settings)
        )
        self.prompt_manager = PromptManager()

        self.session = ConversationSession(
            self.provider,
            self.prompt_manager.system_instruction(),
            event_bus=self.event_bus,
            model_name=CHAT_MODEL,
            temperature=self.settings["chat_temperature"],
        )
        self.playback = AudioPlaybackController(
            SpeechSynthesisClient(self.provider),
            backend_factory=backend_factory,
            event_bus=self.event_bus,
        )
        self.chat = ChatOrchestrator(
            self.session,
            self.playback,
            auto_play=self.settings["auto_play_speech"],
        )

        self.credentials = SettingsCredentialProvider(selector=credential_selector)
        self.video = VideoAnimatorOrchestrator(
            self.credentials,
            self._video_provider_for,
            event_bus=self.event_bus,
            max_wait=self.settings.get("video_poll_timeout_seconds", VIDEO_POLL_TIMEOUT),
        )

        self._register_event_handlers()
        logger.info("SchoolBuddyApp initialized successfully.")

    def _video_provider_for(self, api_key: str) -> GeminiProvider:
        # Re-created per job so a key chosen in the selection flow is picked up.
        if api_key == self.provider.api_key:
            return self.provider
        return GeminiProvider(api_key=api_key)

    def _register_event_handlers(self) -> None:
        self.event_bus.subscribe(MODEL_STREAM_FAILED, self._log_failure)
        self.event_bus.subscribe(AUDIO_PLAYBACK_FAILED, self._log_failure)
        self.event_bus.subscribe(VIDEO_JOB_STATUS_CHANGED, self._on_video_status)

    def _log_failure(self, event: Event) -> None:
        logger.warning("%s: %s", event.event_type, event.payload.get("error"))

    def _on_video_status(self, event: Event) -> None:
        logger.debug("Video job %s is now %s", event.payload.get("job_id"), event.payload.get("status"))

    async def shutdown(self) -> None:
        logger.info("Shutting down SchoolBuddyApp...")
        await self.video.close()
        await self.chat.close()
