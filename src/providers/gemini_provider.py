"""Google Gemini provider: streaming chat, speech synthesis and Veo video jobs."""
import base64
import logging
from typing import Any, AsyncIterator, Dict, Optional

from src.providers.base import (
    ChatProvider,
    ChatSessionHandle,
    RemoteOperation,
    SpeechProvider,
    VideoProvider,
)
from src.schoolbuddy.config import (
    TTS_MODEL,
    VIDEO_COUNT,
    VIDEO_MODEL,
    VIDEO_RESOLUTION,
)
from src.schoolbuddy.models.exceptions import (
    CredentialError,
    RemoteOperationFailure,
    StreamingFailure,
    SubmissionFailure,
    SynthesisError,
)
from src.schoolbuddy.models.message import Attachment
from src.schoolbuddy.models.video_job import AspectRatio, SourceImage
from src.schoolbuddy.services.credential_service import discover_api_key


logger = logging.getLogger(__name__)


class GeminiChatSession(ChatSessionHandle):
    """A live ``client.aio.chats`` session."""

    def __init__(self, chat: Any, model_name: str) -> None:
        self._chat = chat
        self.model_name = model_name

    async def send_stream(
        self,
        text: str,
        attachment: Optional[Attachment] = None,
    ) -> AsyncIterator[str]:
        from google.genai import types

        if attachment is not None:
            message: Any = [
                types.Part.from_bytes(data=attachment.data, mime_type=attachment.mime_type),
                types.Part.from_text(text=text),
            ]
        else:
            message = text

        try:
            stream = await self._chat.send_message_stream(message)
        except Exception as exc:
            logger.error("Gemini chat stream could not be opened for model '%s': %s", self.model_name, exc)
            raise StreamingFailure("Chat stream could not be opened", cause=exc) from exc

        return self._iter_fragments(stream)

    async def _iter_fragments(self, stream: Any) -> AsyncIterator[str]:
        try:
            async for chunk in stream:
                fragment = getattr(chunk, "text", None)
                if fragment:
                    yield fragment
        except Exception as exc:
            logger.error("Gemini chat stream failed for model '%s': %s", self.model_name, exc)
            raise StreamingFailure("Chat stream interrupted", cause=exc) from exc


class GeminiProvider(ChatProvider, SpeechProvider, VideoProvider):
    """
    Provider for Google Gemini models built on the ``google-genai`` SDK.

    The key can be passed explicitly (the video flow re-creates the provider
    right after credential selection); otherwise it is discovered from
    GEMINI_API_KEY, GOOGLE_API_KEY or user_settings.json.
    """

    provider_name = "Google"

    def __init__(self, api_key: Optional[str] = None, client: Optional[Any] = None) -> None:
        """
        Initialize the provider.

        Args:
            api_key: Explicit access key. Discovered when omitted.
            client: Pre-built ``genai.Client``-compatible object, mainly for tests.
        """
        self.api_key = api_key if api_key is not None else discover_api_key()
        self.client = client

        if self.client is not None:
            logger.debug("GeminiProvider initialized with an injected client")
        elif self.api_key:
            self._init_client()
            logger.info("GeminiProvider initialized with API key")
        else:
            logger.warning(
                "GeminiProvider initialized without API key. "
                "Set GEMINI_API_KEY or GOOGLE_API_KEY environment variable, "
                "or configure api_keys.google in user_settings.json"
            )

    def _init_client(self) -> None:
        """Initialize the Google Gen AI client."""
        try:
            from google import genai
        except ImportError as exc:
            logger.error("Failed to import google.genai. Install with: pip install google-genai")
            raise ImportError(
                "google-genai package not installed. Install with: pip install google-genai"
            ) from exc
        self.client = genai.Client(api_key=self.api_key)
        logger.debug("Google Gen AI client configured successfully")

    def _require_client(self, error_type: type = CredentialError) -> Any:
        if self.client is None:
            raise error_type("Gemini client not initialized. Check API key configuration.")
        return self.client

    # ------------------- Chat -------------------
    def create_session(
        self,
        system_instruction: str,
        model_name: str,
        temperature: float,
    ) -> GeminiChatSession:
        from google.genai import types

        client = self._require_client()
        chat = client.aio.chats.create(
            model=model_name,
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
                temperature=temperature,
            ),
        )
        logger.debug("Created Gemini chat session for model '%s'", model_name)
        return GeminiChatSession(chat, model_name)

    # ------------------- Speech -------------------
    async def synthesize_speech(self, text: str, voice_name: str) -> bytes:
        from google.genai import types

        client = self._require_client(SynthesisError)
        config = types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice_name)
                )
            ),
        )
        try:
            response = await client.aio.models.generate_content(
                model=TTS_MODEL,
                contents=text,
                config=config,
            )
        except Exception as exc:
            logger.error("Gemini TTS request failed: %s", exc)
            raise SynthesisError("Speech synthesis request failed", cause=exc) from exc

        audio = _extract_inline_audio(response)
        if not audio:
            raise SynthesisError("No audio data returned from Gemini TTS")
        return audio

    # ------------------- Video -------------------
    async def submit_video(
        self,
        image: SourceImage,
        prompt: str,
        aspect_ratio: AspectRatio,
    ) -> RemoteOperation:
        from google.genai import types

        client = self._require_client(SubmissionFailure)
        try:
            operation = await client.aio.models.generate_videos(
                model=VIDEO_MODEL,
                prompt=prompt,
                image=types.Image(image_bytes=image.data, mime_type=image.mime_type),
                config=types.GenerateVideosConfig(
                    number_of_videos=VIDEO_COUNT,
                    resolution=VIDEO_RESOLUTION,
                    aspect_ratio=aspect_ratio.value,
                ),
            )
        except Exception as exc:
            logger.error("Veo submission failed: %s", exc)
            raise SubmissionFailure(str(exc) or "Video submission rejected", cause=exc) from exc

        logger.info("Veo job accepted: %s", getattr(operation, "name", "<unnamed>"))
        return _to_remote_operation(operation)

    async def poll_video(self, operation: RemoteOperation) -> RemoteOperation:
        client = self._require_client(RemoteOperationFailure)
        try:
            refreshed = await client.aio.operations.get(operation.handle)
        except Exception as exc:
            logger.error("Veo status request failed: %s", exc)
            raise RemoteOperationFailure(str(exc) or "Video status request failed", cause=exc) from exc
        return _to_remote_operation(refreshed)

    def resolve_download_uri(self, video_uri: str) -> str:
        if not self.api_key:
            return video_uri
        separator = "&" if "?" in video_uri else "?"
        return f"{video_uri}{separator}key={self.api_key}"


def _extract_inline_audio(response: Any) -> Optional[bytes]:
    """Pull the first inline audio part out of a generate_content response."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    if not parts:
        return None
    inline_data = getattr(parts[0], "inline_data", None)
    data = getattr(inline_data, "data", None)
    if isinstance(data, str):
        # Some transports hand the payload back still base64-encoded.
        return base64.b64decode(data)
    return data


def _error_to_dict(error: Any) -> Optional[Dict[str, Any]]:
    if not error:
        return None
    if isinstance(error, dict):
        return error
    message = getattr(error, "message", None)
    return {"message": message} if message else {"message": str(error)}


def _to_remote_operation(operation: Any) -> RemoteOperation:
    """Normalise a google-genai video operation into a RemoteOperation."""
    response = getattr(operation, "response", None) or getattr(operation, "result", None)
    videos = getattr(response, "generated_videos", None) or []
    video_uri = None
    if videos:
        video = getattr(videos[0], "video", None)
        video_uri = getattr(video, "uri", None)

    return RemoteOperation(
        done=bool(getattr(operation, "done", False)),
        error=_error_to_dict(getattr(operation, "error", None)),
        video_uri=video_uri,
        handle=operation,
    )
