"""
Video generation job model and its transition function.

A job is an immutable snapshot; every state change goes through :func:`advance`,
which checks the transition table and re-validates the result/error invariant.
"""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class VideoJobStatus(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATUSES: FrozenSet[VideoJobStatus] = frozenset({VideoJobStatus.DONE, VideoJobStatus.FAILED})

# POLLING -> POLLING refreshes the operation handle after each tick.
ALLOWED_TRANSITIONS: Dict[VideoJobStatus, FrozenSet[VideoJobStatus]] = {
    VideoJobStatus.IDLE: frozenset({VideoJobStatus.SUBMITTING, VideoJobStatus.FAILED}),
    VideoJobStatus.SUBMITTING: frozenset({VideoJobStatus.POLLING, VideoJobStatus.FAILED}),
    VideoJobStatus.POLLING: frozenset(
        {VideoJobStatus.POLLING, VideoJobStatus.DONE, VideoJobStatus.FAILED}
    ),
    VideoJobStatus.DONE: frozenset(),
    VideoJobStatus.FAILED: frozenset(),
}


class AspectRatio(str, Enum):
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"


class SourceImage(BaseModel):
    """Image bytes plus declared MIME type, as handed over by the file picker."""
    model_config = ConfigDict(frozen=True)

    mime_type: str
    data: bytes


class InvalidTransitionError(RuntimeError):
    """Raised when a job is asked to move along an edge the table does not allow."""


class VideoJob(BaseModel):
    """
    Snapshot of one image-to-video job.

    Attributes:
        id: Unique job identifier.
        generation: Generation token assigned by the orchestrator that created the job.
        status: Current state.
        source_image: Image to animate.
        prompt: Motion description sent with the image.
        aspect_ratio: Requested output format.
        operation_handle: Opaque remote operation, set once the job is accepted.
        result_uri: Downloadable video URI, only when DONE.
        error: Failure message, only when FAILED.
        progress_label: Best-effort text for the UI; not authoritative status.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    generation: int = 0
    status: VideoJobStatus = VideoJobStatus.IDLE
    source_image: Optional[SourceImage] = None
    prompt: str = ""
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    operation_handle: Optional[Any] = Field(default=None, exclude=True)
    result_uri: Optional[str] = None
    error: Optional[str] = None
    progress_label: str = ""

    @model_validator(mode="after")
    def _check_outcome_fields(self) -> "VideoJob":
        if self.result_uri is not None and self.error is not None:
            raise ValueError("result_uri and error are mutually exclusive")
        if self.result_uri is not None and self.status is not VideoJobStatus.DONE:
            raise ValueError("result_uri may only be set on a DONE job")
        if self.error is not None and self.status is not VideoJobStatus.FAILED:
            raise ValueError("error may only be set on a FAILED job")
        if self.status is VideoJobStatus.DONE and not self.result_uri:
            raise ValueError("a DONE job needs a result_uri")
        if self.status is VideoJobStatus.FAILED and not self.error:
            raise ValueError("a FAILED job needs an error message")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def advance(job: VideoJob, status: VideoJobStatus, **changes: Any) -> VideoJob:
    """
    Return a new snapshot of ``job`` moved to ``status`` with ``changes`` applied.

    Raises:
        InvalidTransitionError: If the move is not in ALLOWED_TRANSITIONS.
        pydantic.ValidationError: If the resulting snapshot breaks the outcome invariant.
    """
    if status not in ALLOWED_TRANSITIONS[job.status]:
        raise InvalidTransitionError(
            f"Cannot move video job {job.id} from {job.status.value} to {status.value}"
        )
    fields = dict(job)
    fields.update(changes)
    fields["status"] = status
    return VideoJob(**fields)


def with_progress_label(job: VideoJob, label: str) -> VideoJob:
    """Return ``job`` with a new cosmetic progress label; status is untouched."""
    return job.model_copy(update={"progress_label": label})
