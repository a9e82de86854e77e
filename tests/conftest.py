from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

import numpy as np
import pytest

from src.providers.base import (
    ChatProvider,
    ChatSessionHandle,
    RemoteOperation,
    SpeechProvider,
    VideoProvider,
)
from src.schoolbuddy.audio.playback_backend import PlaybackBackend, PlaybackHandle
from src.schoolbuddy.models.events import Event
from src.schoolbuddy.models.message import Attachment
from src.schoolbuddy.models.video_job import AspectRatio, SourceImage
from src.schoolbuddy.services.credential_service import CredentialProvider


class RecordingEventBus:
    """Synchronous in-memory event bus used by tests."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callable[[Event], None]]] = {}
        self.dispatched: List[Event] = []

    def subscribe(self, event_type: str, callback: Callable[[Event], None]) -> None:
        self._subscribers.setdefault(event_type, []).append(callback)

    def dispatch(self, event: Event) -> None:
        self.dispatched.append(event)
        for callback in self._subscribers.get(event.event_type, []):
            callback(event)

    def of_type(self, event_type: str) -> List[Event]:
        return [event for event in self.dispatched if event.event_type == event_type]


# -- Chat ----------------------------------------------------------------------------


class ScriptedChatSession(ChatSessionHandle):
    """
    Replays a fixed list of fragments.

    ``fail_after`` raises once that many fragments were yielded; ``gate`` pauses
    the stream after the first fragment until it is set.
    """

    def __init__(
        self,
        fragments: Sequence[str],
        fail_after: Optional[int] = None,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.gate = gate
        self.sent: List[tuple] = []

    async def send_stream(self, text: str, attachment: Optional[Attachment] = None) -> AsyncIterator[str]:
        self.sent.append((text, attachment))
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        for index, fragment in enumerate(self.fragments):
            if self.fail_after is not None and index >= self.fail_after:
                raise ConnectionError("stream dropped")
            yield fragment
            if self.gate is not None and index == 0:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
        if self.fail_after is not None and self.fail_after >= len(self.fragments):
            raise ConnectionError("stream dropped")


class ScriptedChatProvider(ChatProvider):
    provider_name = "Scripted"

    def __init__(self, session_factory: Optional[Callable[[], ScriptedChatSession]] = None) -> None:
        self._session_factory = session_factory or (lambda: ScriptedChatSession(["Ciao", "!"]))
        self.sessions: List[ScriptedChatSession] = []
        self.created_with: List[tuple] = []

    def create_session(self, system_instruction: str, model_name: str, temperature: float) -> ScriptedChatSession:
        self.created_with.append((system_instruction, model_name, temperature))
        session = self._session_factory()
        self.sessions.append(session)
        return session


# -- Speech / playback ---------------------------------------------------------------


class FakeSpeechProvider(SpeechProvider):
    def __init__(self, payload: bytes = b"\x00\x00\xff\x7f", error: Optional[Exception] = None) -> None:
        self.payload = payload
        self.error = error
        self.gate: Optional[asyncio.Event] = None
        self.requests: List[tuple] = []

    async def synthesize_speech(self, text: str, voice_name: str) -> bytes:
        self.requests.append((text, voice_name))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.payload


class FakePlaybackHandle(PlaybackHandle):
    def __init__(self, samples: np.ndarray, sample_rate: int, on_finished: Callable[[], None]) -> None:
        self.samples = samples
        self.sample_rate = sample_rate
        self.on_finished = on_finished
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True

    def finish(self) -> None:
        self.on_finished()


class FakePlaybackBackend(PlaybackBackend):
    def __init__(self) -> None:
        self.handles: List[FakePlaybackHandle] = []
        self.closed = False

    def start(self, samples: np.ndarray, sample_rate: int, on_finished: Callable[[], None]) -> FakePlaybackHandle:
        handle = FakePlaybackHandle(samples, sample_rate, on_finished)
        self.handles.append(handle)
        return handle

    def close(self) -> None:
        self.closed = True

    @property
    def live_handles(self) -> List[FakePlaybackHandle]:
        return [handle for handle in self.handles if not handle.stopped]


# -- Video ---------------------------------------------------------------------------


class ScriptedVideoProvider(VideoProvider):
    """Returns a pending operation on submit, then replays ``polls`` in order."""

    def __init__(
        self,
        polls: Sequence[RemoteOperation] = (),
        submit_error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.polls = list(polls)
        self.submit_error = submit_error
        self.gate = gate
        self.submitted: List[tuple] = []
        self.poll_count = 0

    async def submit_video(self, image: SourceImage, prompt: str, aspect_ratio: AspectRatio) -> RemoteOperation:
        self.submitted.append((image, prompt, aspect_ratio))
        if self.submit_error is not None:
            raise self.submit_error
        return RemoteOperation(done=False, handle="op-0")

    async def poll_video(self, operation: RemoteOperation) -> RemoteOperation:
        if self.gate is not None:
            await self.gate.wait()
        self.poll_count += 1
        if self.polls:
            return self.polls.pop(0)
        return RemoteOperation(done=False, handle=f"op-{self.poll_count}")

    def resolve_download_uri(self, video_uri: str) -> str:
        return f"{video_uri}?key=test-key"


class FakeCredentials(CredentialProvider):
    def __init__(self, api_key: Optional[str] = "test-key", key_after_selection: Optional[str] = None) -> None:
        self._api_key = api_key
        self.key_after_selection = key_after_selection
        self.selection_requests = 0

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key

    async def has_credential(self) -> bool:
        return bool(self._api_key)

    async def request_credential_selection(self) -> None:
        self.selection_requests += 1
        if self.key_after_selection:
            self._api_key = self.key_after_selection


def pending(handle: str = "op") -> RemoteOperation:
    return RemoteOperation(done=False, handle=handle)


def finished(video_uri: Optional[str] = "https://videos.example/v1", error: Optional[dict] = None) -> RemoteOperation:
    return RemoteOperation(done=True, video_uri=video_uri, error=error, handle="op-done")


@pytest.fixture
def event_bus() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def source_image() -> SourceImage:
    return SourceImage(mime_type="image/png", data=b"\x89PNG fake")
