"""Tests for GeminiProvider against a fake google-genai client."""

import asyncio
import base64
from types import SimpleNamespace
from typing import Any, List

import pytest

from src.providers.gemini_provider import GeminiProvider
from src.schoolbuddy.config import TTS_MODEL, VIDEO_MODEL
from src.schoolbuddy.models.exceptions import (
    CredentialError,
    RemoteOperationFailure,
    StreamingFailure,
    SubmissionFailure,
    SynthesisError,
)
from src.schoolbuddy.models.message import Attachment
from src.schoolbuddy.models.video_job import AspectRatio, SourceImage


class _FakeChat:
    def __init__(self, chunks: List[Any], fail_mid_stream: bool = False) -> None:
        self.chunks = chunks
        self.fail_mid_stream = fail_mid_stream
        self.messages: List[Any] = []

    async def send_message_stream(self, message: Any):
        self.messages.append(message)
        return self._stream()

    async def _stream(self):
        for chunk in self.chunks:
            yield chunk
        if self.fail_mid_stream:
            raise ConnectionError("reset by peer")


class _FakeClient:
    def __init__(self) -> None:
        self.chat = _FakeChat([SimpleNamespace(text="Ciao"), SimpleNamespace(text=None), SimpleNamespace(text="!")])
        self.chat_calls: List[dict] = []
        self.content_calls: List[dict] = []
        self.video_calls: List[dict] = []
        self.audio_response: Any = None
        self.video_operation: Any = SimpleNamespace(name="operations/1", done=False, error=None, response=None)
        self.refreshed_operation: Any = None
        self.error: Exception = None
        self.aio = SimpleNamespace(
            chats=SimpleNamespace(create=self._create_chat),
            models=SimpleNamespace(generate_content=self._generate_content, generate_videos=self._generate_videos),
            operations=SimpleNamespace(get=self._get_operation),
        )

    def _create_chat(self, model: str, config: Any) -> _FakeChat:
        self.chat_calls.append({"model": model, "config": config})
        return self.chat

    async def _generate_content(self, model: str, contents: Any, config: Any) -> Any:
        self.content_calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return self.audio_response

    async def _generate_videos(self, model: str, prompt: str, image: Any, config: Any) -> Any:
        self.video_calls.append({"model": model, "prompt": prompt, "image": image, "config": config})
        if self.error is not None:
            raise self.error
        return self.video_operation

    async def _get_operation(self, operation: Any) -> Any:
        if self.error is not None:
            raise self.error
        return self.refreshed_operation


def _audio_response(data: Any) -> Any:
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type="audio/L16;rate=24000"))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


@pytest.fixture
def client() -> _FakeClient:
    return _FakeClient()


@pytest.fixture
def provider(client: _FakeClient) -> GeminiProvider:
    return GeminiProvider(api_key="secret", client=client)


# -- Chat ----------------------------------------------------------------------------


def test_chat_session_uses_system_instruction_and_temperature(provider, client) -> None:
    provider.create_session("Sei un assistente", "gemini-test", 0.3)

    call = client.chat_calls[0]
    assert call["model"] == "gemini-test"
    assert call["config"].system_instruction == "Sei un assistente"
    assert call["config"].temperature == 0.3


def test_stream_skips_empty_chunks(provider) -> None:
    session = provider.create_session("s", "m", 0.7)

    async def _collect():
        stream = await session.send_stream("Ciao")
        return [fragment async for fragment in stream]

    assert asyncio.run(_collect()) == ["Ciao", "!"]


def test_attachment_is_sent_as_inline_part(provider, client) -> None:
    session = provider.create_session("s", "m", 0.7)
    attachment = Attachment(name="ptof.pdf", mime_type="application/pdf", data=b"%PDF-1.7")

    async def _collect():
        stream = await session.send_stream("Riassumi", attachment)
        return [fragment async for fragment in stream]

    asyncio.run(_collect())

    file_part, text_part = client.chat.messages[0]
    assert file_part.inline_data.data == b"%PDF-1.7"
    assert file_part.inline_data.mime_type == "application/pdf"
    assert text_part.text == "Riassumi"


def test_mid_stream_error_becomes_streaming_failure(provider, client) -> None:
    client.chat = _FakeChat([SimpleNamespace(text="Par")], fail_mid_stream=True)
    session = provider.create_session("s", "m", 0.7)

    async def _collect():
        stream = await session.send_stream("Ciao")
        return [fragment async for fragment in stream]

    with pytest.raises(StreamingFailure):
        asyncio.run(_collect())


def test_missing_key_raises_credential_error(monkeypatch) -> None:
    monkeypatch.setattr("src.providers.gemini_provider.discover_api_key", lambda: None)
    provider = GeminiProvider()

    with pytest.raises(CredentialError):
        provider.create_session("s", "m", 0.7)


# -- Speech --------------------------------------------------------------------------


def test_tts_requests_audio_with_voice(provider, client) -> None:
    client.audio_response = _audio_response(b"\x00\x01")

    audio = asyncio.run(provider.synthesize_speech("Ciao", "Charon"))

    call = client.content_calls[0]
    assert audio == b"\x00\x01"
    assert call["model"] == TTS_MODEL
    assert call["config"].response_modalities == ["AUDIO"]
    assert call["config"].speech_config.voice_config.prebuilt_voice_config.voice_name == "Charon"


def test_tts_decodes_base64_payload(provider, client) -> None:
    client.audio_response = _audio_response(base64.b64encode(b"\x10\x20").decode("ascii"))

    assert asyncio.run(provider.synthesize_speech("Ciao", "Charon")) == b"\x10\x20"


def test_tts_without_audio_raises(provider, client) -> None:
    client.audio_response = SimpleNamespace(candidates=[])

    with pytest.raises(SynthesisError):
        asyncio.run(provider.synthesize_speech("Ciao", "Charon"))


def test_tts_transport_error_is_wrapped(provider, client) -> None:
    client.error = TimeoutError("deadline")

    with pytest.raises(SynthesisError):
        asyncio.run(provider.synthesize_speech("Ciao", "Charon"))


# -- Video ---------------------------------------------------------------------------


def test_submit_video_sends_image_and_config(provider, client) -> None:
    image = SourceImage(mime_type="image/jpeg", data=b"jpeg")

    operation = asyncio.run(provider.submit_video(image, "Nuvole", AspectRatio.PORTRAIT))

    call = client.video_calls[0]
    assert call["model"] == VIDEO_MODEL
    assert call["prompt"] == "Nuvole"
    assert call["image"].image_bytes == b"jpeg"
    assert call["image"].mime_type == "image/jpeg"
    assert call["config"].aspect_ratio == "9:16"
    assert call["config"].number_of_videos == 1
    assert call["config"].resolution == "720p"
    assert operation.done is False
    assert operation.handle is client.video_operation


def test_submit_rejection_raises_submission_failure(provider, client) -> None:
    client.error = RuntimeError("Requested entity was not found.")
    image = SourceImage(mime_type="image/png", data=b"png")

    with pytest.raises(SubmissionFailure) as excinfo:
        asyncio.run(provider.submit_video(image, "x", AspectRatio.LANDSCAPE))

    assert excinfo.value.message == "Requested entity was not found."


def test_poll_extracts_video_uri(provider, client) -> None:
    video = SimpleNamespace(video=SimpleNamespace(uri="https://files/v.mp4?alt=media"))
    client.refreshed_operation = SimpleNamespace(
        done=True, error=None, response=SimpleNamespace(generated_videos=[video])
    )

    operation = asyncio.run(provider.poll_video(asyncio.run(_submitted(provider))))

    assert operation.done is True
    assert operation.video_uri == "https://files/v.mp4?alt=media"
    assert operation.error is None


def test_poll_reports_remote_error(provider, client) -> None:
    client.refreshed_operation = SimpleNamespace(done=True, error={"message": "quota"}, response=None)

    operation = asyncio.run(provider.poll_video(asyncio.run(_submitted(provider))))

    assert operation.error == {"message": "quota"}
    assert operation.video_uri is None


def test_poll_transport_error_is_wrapped(provider, client) -> None:
    submitted = asyncio.run(_submitted(provider))
    client.error = ConnectionError("offline")

    with pytest.raises(RemoteOperationFailure):
        asyncio.run(provider.poll_video(submitted))


def test_download_uri_gets_key_with_correct_separator(provider) -> None:
    assert provider.resolve_download_uri("https://files/v.mp4?alt=media") == "https://files/v.mp4?alt=media&key=secret"
    assert provider.resolve_download_uri("https://files/v.mp4") == "https://files/v.mp4?key=secret"


async def _submitted(provider: GeminiProvider):
    return await provider.submit_video(SourceImage(mime_type="image/png", data=b"png"), "x", AspectRatio.LANDSCAPE)
