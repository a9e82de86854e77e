import asyncio
import logging
import time
from typing import Callable, Optional

from pydantic import ValidationError

from src.providers.base import RemoteOperation, VideoProvider
from src.schoolbuddy.app.event_bus import EventBus
from src.schoolbuddy.config import VIDEO_POLL_INTERVAL, VIDEO_POLL_TIMEOUT
from src.schoolbuddy.models.event_types import VIDEO_JOB_STATUS_CHANGED
from src.schoolbuddy.models.events import Event
from src.schoolbuddy.models.exceptions import (
    GenAIServiceError,
    MissingResultError,
    RemoteOperationFailure,
)
from src.schoolbuddy.models.video_job import (
    AspectRatio,
    InvalidTransitionError,
    SourceImage,
    VideoJob,
    VideoJobStatus,
    advance,
    with_progress_label,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Video generation failed"
NO_RESULT_MESSAGE = "No video URI returned: no result returned by the remote operation."
CANCELLED_MESSAGE = "Video generation cancelled."


class VideoGenerationJob:
    """
    Submit-then-poll state machine for one image-to-video request.

    IDLE -> SUBMITTING -> POLLING -> DONE | FAILED. The job owns its snapshot
    and is the only thing that mutates it; a terminal job never moves again.
    Polling runs at a fixed interval until the operation reports done or the
    optional deadline passes.
    """

    def __init__(
        self,
        source_image: SourceImage,
        prompt: str,
        aspect_ratio: AspectRatio,
        generation: int = 0,
        event_bus: Optional[EventBus] = None,
        poll_interval: float = VIDEO_POLL_INTERVAL,
        max_wait: Optional[float] = VIDEO_POLL_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.event_bus = event_bus
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self._clock = clock
        self._state = VideoJob(
            generation=generation,
            source_image=source_image,
            prompt=prompt,
            aspect_ratio=aspect_ratio,
        )

    @property
    def state(self) -> VideoJob:
        return self._state

    @property
    def status(self) -> VideoJobStatus:
        return self._state.status

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def begin_submission(self) -> None:
        self._transition(VideoJobStatus.SUBMITTING)

    def fail(self, message: str) -> None:
        """Move to FAILED unless the job already reached a terminal state."""
        if self.is_terminal:
            logger.debug("Ignoring failure for finished job %s: %s", self._state.id, message)
            return
        self._transition(VideoJobStatus.FAILED, error=message or GENERIC_FAILURE_MESSAGE)

    def set_progress_label(self, label: str) -> None:
        self._state = with_progress_label(self._state, label)

    async def run(self, provider: VideoProvider) -> VideoJob:
        """
        Submit the job and poll it to completion.

        Every provider failure is converted into a FAILED state; cancellation
        marks the job FAILED and propagates. A job failed from outside while
        a request is pending stops at the next step without further calls.

        Raises:
            InvalidTransitionError: If the job is not IDLE or SUBMITTING, or
                the state machine is asked to make an illegal move.
        """
        if self.status is VideoJobStatus.IDLE:
            self.begin_submission()
        elif self.status is not VideoJobStatus.SUBMITTING:
            raise InvalidTransitionError(
                f"Video job {self._state.id} cannot run from {self.status.value}"
            )

        try:
            operation = await provider.submit_video(
                self._state.source_image,
                self._state.prompt,
                self._state.aspect_ratio,
            )
            if self._detached():
                return self._state
            self._transition(VideoJobStatus.POLLING, operation_handle=operation.handle)
            operation = await self._poll_until_done(provider, operation)
            if operation is None:
                return self._state
            self._complete(provider, operation)
        except asyncio.CancelledError:
            self.fail(CANCELLED_MESSAGE)
            raise
        except (InvalidTransitionError, ValidationError):
            raise
        except GenAIServiceError as exc:
            logger.error("Video job %s failed: %s", self._state.id, exc)
            self.fail(exc.message)
        except Exception as exc:
            logger.error("Video job %s failed unexpectedly: %s", self._state.id, exc, exc_info=True)
            self.fail(str(exc) or GENERIC_FAILURE_MESSAGE)
        return self._state

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _poll_until_done(
        self,
        provider: VideoProvider,
        operation: RemoteOperation,
    ) -> Optional[RemoteOperation]:
        """Returns the finished operation, or None once the job was failed from outside."""
        started = self._clock()
        ticks = 0
        while not operation.done:
            if self.max_wait is not None and self._clock() - started >= self.max_wait:
                raise RemoteOperationFailure(
                    f"Video generation timed out after {self.max_wait:.0f} seconds"
                )
            await asyncio.sleep(self.poll_interval)
            if self._detached():
                return None
            operation = await provider.poll_video(operation)
            ticks += 1
            logger.debug("Video job %s poll #%d: done=%s", self._state.id, ticks, operation.done)
            if self._detached():
                return None
            self._transition(VideoJobStatus.POLLING, operation_handle=operation.handle)
        return operation

    def _detached(self) -> bool:
        if self.is_terminal:
            logger.info("Video job %s is already %s; stopping", self._state.id, self.status.value)
            return True
        return False

    def _complete(self, provider: VideoProvider, operation: RemoteOperation) -> None:
        if operation.error is not None:
            message = operation.error.get("message") or GENERIC_FAILURE_MESSAGE
            raise RemoteOperationFailure(str(message))
        if not operation.video_uri:
            raise MissingResultError(NO_RESULT_MESSAGE)
        result_uri = provider.resolve_download_uri(operation.video_uri)
        self._transition(VideoJobStatus.DONE, result_uri=result_uri)
        logger.info("Video job %s finished", self._state.id)

    def _transition(self, status: VideoJobStatus, **changes) -> None:
        previous = self._state.status
        self._state = advance(self._state, status, **changes)
        if previous is not status:
            logger.info("Video job %s: %s -> %s", self._state.id, previous.value, status.value)
            self._dispatch()

    def _dispatch(self) -> None:
        if self.event_bus is None:
            return
        self.event_bus.dispatch(
            Event(
                event_type=VIDEO_JOB_STATUS_CHANGED,
                payload={
                    "job_id": self._state.id,
                    "generation": self._state.generation,
                    "status": self._state.status.value,
                    "result_uri": self._state.result_uri,
                    "error": self._state.error,
                },
            )
        )
