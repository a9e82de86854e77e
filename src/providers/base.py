from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.schoolbuddy.models.message import Attachment
from src.schoolbuddy.models.video_job import AspectRatio, SourceImage


class ChatSessionHandle(ABC):
    """
    Opaque reference to a server-side conversation bound to a system
    instruction and model configuration.
    """

    @abstractmethod
    async def send_stream(
        self,
        text: str,
        attachment: Optional[Attachment] = None,
    ) -> AsyncIterator[str]:
        """
        Sends one user turn and returns the reply as a lazy sequence of text fragments.

        The returned iterator is finite and cannot be restarted. Failures may be
        raised either by this call or while iterating.

        Args:
            text: The user's prompt text.
            attachment: Optional binary part transmitted with its declared MIME type.

        Returns:
            An async iterator of UTF-8 text deltas in arrival order.
        """
        pass


class ChatProvider(ABC):
    """
    Abstract Base Class for providers that can open streaming chat sessions.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """The official name of the provider (e.g., 'Google')."""
        pass

    @abstractmethod
    def create_session(
        self,
        system_instruction: str,
        model_name: str,
        temperature: float,
    ) -> ChatSessionHandle:
        """
        Creates a brand-new remote chat session with no prior context.
        """
        pass


class SpeechProvider(ABC):
    """Abstract Base Class for text-to-speech providers."""

    @abstractmethod
    async def synthesize_speech(self, text: str, voice_name: str) -> bytes:
        """
        Returns raw 16-bit little-endian mono PCM at 24 kHz for ``text``.

        Raises:
            SynthesisError: If the call fails or no audio is returned.
        """
        pass


class RemoteOperation(BaseModel):
    """
    Normalised view of a long-running remote video operation.

    Attributes:
        done: Whether the remote side reports the operation as finished.
        error: Error object reported by the remote side (e.g. {"message": ...}), if any.
        video_uri: URI of the first generated video, if any.
        handle: The provider's own operation object, passed back on the next poll.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    done: bool = False
    error: Optional[Dict[str, Any]] = None
    video_uri: Optional[str] = None
    handle: Optional[Any] = Field(default=None, exclude=True)


class VideoProvider(ABC):
    """Abstract Base Class for image-to-video providers with a submit/poll contract."""

    @abstractmethod
    async def submit_video(
        self,
        image: SourceImage,
        prompt: str,
        aspect_ratio: AspectRatio,
    ) -> RemoteOperation:
        """
        Submits an image-to-video job.

        Raises:
            SubmissionFailure: If the remote side rejects the request.
        """
        pass

    @abstractmethod
    async def poll_video(self, operation: RemoteOperation) -> RemoteOperation:
        """
        Re-fetches the status of a previously submitted operation.

        Raises:
            RemoteOperationFailure: If the status request itself fails.
        """
        pass

    @abstractmethod
    def resolve_download_uri(self, video_uri: str) -> str:
        """Returns ``video_uri`` with whatever credential it needs to be fetchable."""
        pass
