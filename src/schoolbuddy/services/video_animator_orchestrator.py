import asyncio
import logging
from typing import Callable, Optional

from src.providers.base import VideoProvider
from src.schoolbuddy.app.event_bus import EventBus
from src.schoolbuddy.config import (
    CREDENTIAL_SETTLE_DELAY,
    PROGRESS_ANIMATING,
    PROGRESS_CHECKING_PERMISSIONS,
    PROGRESS_INITIALIZING,
    VIDEO_DEFAULT_PROMPT,
    VIDEO_POLL_INTERVAL,
    VIDEO_POLL_TIMEOUT,
    VIDEO_PROGRESS_DELAY,
)
from src.schoolbuddy.models.event_types import VIDEO_PROGRESS_UPDATED
from src.schoolbuddy.models.events import Event
from src.schoolbuddy.models.exceptions import SubmissionFailure
from src.schoolbuddy.models.video_job import AspectRatio, SourceImage, VideoJob
from src.schoolbuddy.services.credential_service import CredentialProvider
from src.schoolbuddy.services.video_generation_job import CANCELLED_MESSAGE, VideoGenerationJob

logger = logging.getLogger(__name__)

MISSING_CREDENTIAL_MESSAGE = "No API key configured. Select an API key and try again."


class VideoAnimatorOrchestrator:
    """
    Drives image-to-video jobs from user input.

    At most one job is current. Starting a new one cancels the previous
    job's task and bumps the generation token, so late updates from the old
    job never touch the orchestrator's flags or progress text.
    """

    def __init__(
        self,
        credentials: CredentialProvider,
        provider_factory: Callable[[str], VideoProvider],
        event_bus: Optional[EventBus] = None,
        poll_interval: float = VIDEO_POLL_INTERVAL,
        max_wait: Optional[float] = VIDEO_POLL_TIMEOUT,
        settle_delay: float = CREDENTIAL_SETTLE_DELAY,
        progress_delay: float = VIDEO_PROGRESS_DELAY,
    ) -> None:
        self.credentials = credentials
        self.provider_factory = provider_factory
        self.event_bus = event_bus
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.settle_delay = settle_delay
        self.progress_delay = progress_delay

        self.is_generating = False
        self.progress_label = ""
        self._generation = 0
        self._job: Optional[VideoGenerationJob] = None
        self._task: Optional[asyncio.Task] = None
        self._progress_timer: Optional[asyncio.TimerHandle] = None

    @property
    def job(self) -> Optional[VideoJob]:
        return self._job.state if self._job is not None else None

    @property
    def generation(self) -> int:
        return self._generation

    async def generate(
        self,
        source_image: Optional[SourceImage],
        prompt: str = "",
        aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE,
    ) -> Optional[VideoJob]:
        """
        Start a new job for ``source_image`` and wait for it to finish.

        Any job still running is abandoned first. Returns the final job
        snapshot, or None when there is no image or this call was superseded
        before its job could start. Cancelling the caller cancels the job and
        waits for it to stop before the cancellation propagates.
        """
        if source_image is None:
            return None

        self._abandon_current()
        self._generation += 1
        generation = self._generation

        job = VideoGenerationJob(
            source_image,
            prompt.strip() or VIDEO_DEFAULT_PROMPT,
            aspect_ratio,
            generation=generation,
            event_bus=self.event_bus,
            poll_interval=self.poll_interval,
            max_wait=self.max_wait,
        )
        self._job = job
        self.is_generating = True
        self._set_progress(generation, PROGRESS_INITIALIZING)
        job.begin_submission()

        task: Optional[asyncio.Task] = None
        try:
            self._set_progress(generation, PROGRESS_CHECKING_PERMISSIONS)
            self._schedule_progress(generation, PROGRESS_ANIMATING)
            api_key = await self._ensure_credential()
            if generation != self._generation:
                return job.state
            if not api_key:
                job.fail(MISSING_CREDENTIAL_MESSAGE)
                return job.state

            try:
                provider = self.provider_factory(api_key)
            except Exception as exc:
                logger.error("Could not create the video provider: %s", exc)
                job.fail(SubmissionFailure(str(exc)).message)
                return job.state

            task = asyncio.create_task(job.run(provider))
            self._task = task
            await asyncio.wait({task})
            if task.cancelled():
                logger.info("Video job %s was cancelled", job.state.id)
            else:
                task.result()
            return job.state
        except asyncio.CancelledError:
            logger.info("Video generation %d cancelled by the caller", generation)
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            job.fail(CANCELLED_MESSAGE)
            raise
        finally:
            if generation == self._generation:
                self._finish(generation)

    def cancel(self) -> None:
        """Detach from the current job, if any."""
        self._abandon_current()
        self._generation += 1
        self.is_generating = False
        self._cancel_progress_timer()
        self.progress_label = ""

    async def configure_credentials(self) -> bool:
        """Run the credential selection flow on demand. Returns whether a key is now available."""
        try:
            await self.credentials.request_credential_selection()
        except Exception as exc:
            logger.error("Credential selection failed: %s", exc)
        return await self.credentials.has_credential()

    async def close(self) -> None:
        task = self._task
        self.cancel()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _ensure_credential(self) -> Optional[str]:
        if await self.credentials.has_credential():
            return self.credentials.api_key

        logger.info("No credential configured; starting selection flow.")
        try:
            await self.credentials.request_credential_selection()
        except Exception as exc:
            logger.error("Credential selection failed: %s", exc)
            return None
        await asyncio.sleep(self.settle_delay)

        if await self.credentials.has_credential():
            return self.credentials.api_key
        return None

    def _abandon_current(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            logger.info("Cancelling previous video job")
            task.cancel()
        elif self._job is not None and not self._job.is_terminal:
            # Superseded before its task started (e.g. waiting on credentials).
            self._job.fail(CANCELLED_MESSAGE)

    def _finish(self, generation: int) -> None:
        self._cancel_progress_timer()
        self.is_generating = False
        self._set_progress(generation, "")
        if self._task is not None and self._task.done():
            self._task = None

    def _schedule_progress(self, generation: int, label: str) -> None:
        self._cancel_progress_timer()
        loop = asyncio.get_running_loop()
        self._progress_timer = loop.call_later(self.progress_delay, self._set_progress, generation, label)

    def _cancel_progress_timer(self) -> None:
        timer, self._progress_timer = self._progress_timer, None
        if timer is not None:
            timer.cancel()

    def _set_progress(self, generation: int, label: str) -> None:
        if generation != self._generation:
            return
        self.progress_label = label
        if self._job is not None:
            self._job.set_progress_label(label)
        if self.event_bus is not None:
            job_id = self._job.state.id if self._job is not None else None
            self.event_bus.dispatch(
                Event(event_type=VIDEO_PROGRESS_UPDATED, payload={"job_id": job_id, "label": label})
            )
