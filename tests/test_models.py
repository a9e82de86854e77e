"""Tests for the pydantic data models."""

import pytest
from pydantic import ValidationError

from src.schoolbuddy.models.message import Attachment, Message, Role
from src.schoolbuddy.models.playback import IDLE_PLAYBACK, PlaybackState
from src.schoolbuddy.models.video_job import (
    InvalidTransitionError,
    VideoJob,
    VideoJobStatus,
    advance,
    with_progress_label,
)


# -- Message --------------------------------------------------------------------------


def test_messages_get_unique_ids_and_are_frozen() -> None:
    first = Message(role=Role.USER, text="Ciao")
    second = Message(role=Role.USER, text="Ciao")

    assert first.id != second.id
    assert first.is_error is False
    with pytest.raises(ValidationError):
        first.text = "changed"


def test_attachment_keeps_bytes_and_mime_type() -> None:
    attachment = Attachment(name="ptof.pdf", mime_type="application/pdf", data=b"%PDF")

    assert attachment.data == b"%PDF"
    assert attachment.mime_type == "application/pdf"


def test_playback_state_idle_property() -> None:
    assert IDLE_PLAYBACK.is_idle
    assert not PlaybackState(active_message_id="m1", is_loading=True).is_idle


# -- VideoJob ------------------------------------------------------------------------


def test_job_walks_the_happy_path() -> None:
    job = VideoJob()
    job = advance(job, VideoJobStatus.SUBMITTING)
    job = advance(job, VideoJobStatus.POLLING, operation_handle="op-1")
    job = advance(job, VideoJobStatus.POLLING, operation_handle="op-2")
    job = advance(job, VideoJobStatus.DONE, result_uri="https://v/1")

    assert job.status is VideoJobStatus.DONE
    assert job.result_uri == "https://v/1"
    assert job.operation_handle == "op-2"
    assert job.is_terminal


def test_terminal_job_cannot_move_again() -> None:
    job = advance(VideoJob(), VideoJobStatus.FAILED, error="boom")

    with pytest.raises(InvalidTransitionError):
        advance(job, VideoJobStatus.SUBMITTING)
    with pytest.raises(InvalidTransitionError):
        advance(job, VideoJobStatus.FAILED, error="again")


def test_idle_job_cannot_jump_to_done() -> None:
    with pytest.raises(InvalidTransitionError):
        advance(VideoJob(), VideoJobStatus.DONE, result_uri="https://v/1")


def test_done_requires_a_result_uri() -> None:
    job = advance(advance(VideoJob(), VideoJobStatus.SUBMITTING), VideoJobStatus.POLLING)

    with pytest.raises(ValidationError):
        advance(job, VideoJobStatus.DONE)


def test_failed_requires_an_error_message() -> None:
    with pytest.raises(ValidationError):
        advance(VideoJob(), VideoJobStatus.FAILED)


def test_result_and_error_are_mutually_exclusive() -> None:
    with pytest.raises(ValidationError):
        VideoJob(status=VideoJobStatus.DONE, result_uri="https://v/1", error="boom")


def test_error_is_rejected_outside_failed() -> None:
    with pytest.raises(ValidationError):
        VideoJob(status=VideoJobStatus.POLLING, error="boom")


def test_progress_label_does_not_change_status() -> None:
    job = advance(VideoJob(), VideoJobStatus.SUBMITTING)

    labelled = with_progress_label(job, "Checking permissions...")

    assert labelled.progress_label == "Checking permissions..."
    assert labelled.status is VideoJobStatus.SUBMITTING
    assert labelled.id == job.id
