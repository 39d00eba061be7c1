"""
JobOrchestrator: drives one design job through its stages.

  Stage 1: Variations (Gemini image edits, sequential, 0 → 40%)
  Stage 2: Videos (Kling image2video per variation, 40 → 95%)
  Done:    completed at 100%, or failed with the error that escaped

Each job runs as its own asyncio task. Per-item problems (a failed edit,
a rejected video submission, a task that fails or times out) are written
onto the variation or video record and the job carries on.
"""

import asyncio
import base64
import logging
import uuid
from typing import Callable, Optional, Set

from .. import config, metrics
from ..errors import FatalPipelineError, PipelineError
from ..gemini import EditResult, ImageEditor, VARIATION_STYLES
from ..kling import KlingClient
from ..timing import BackoffPolicy
from .models import (
    Job,
    JobStage,
    JobStatusView,
    ResultResponse,
    Variation,
    VideoTask,
    VideoTaskStatus,
)
from .projection import result_view, status_view
from .registry import JobRegistry
from .storage import save_variation_image

logger = logging.getLogger(__name__)

VARIATIONS_START = 10
VARIATIONS_DONE = 40
VIDEO_BAND = 20       # percent of progress reserved for each variation's video
VIDEO_PROGRESS_CAP = 95

SaveImage = Callable[[str, Variation], str]


class JobOrchestrator:
    """
    Usage:
        orchestrator = JobOrchestrator(JobRegistry())

        job_id = orchestrator.submit_job(image_bytes, prompt, generate_videos=True)
        orchestrator.get_status(job_id)
        orchestrator.get_result(job_id)
    """

    def __init__(
        self,
        registry: Optional[JobRegistry] = None,
        editor: Optional[ImageEditor] = None,
        video_client: Optional[KlingClient] = None,
        policy: Optional[BackoffPolicy] = None,
        save_image: Optional[SaveImage] = None,
        variation_count: int = config.VARIATION_COUNT,
        video_prompt: str = config.VIDEO_PROMPT,
    ):
        self.registry = registry if registry is not None else JobRegistry()
        self.policy = policy or BackoffPolicy()
        self.editor = editor or ImageEditor(policy=self.policy)
        self.video_client = video_client or KlingClient(policy=self.policy)
        self.save_image = save_image or save_variation_image
        self.variation_count = min(max(variation_count, 0), len(VARIATION_STYLES))
        self.video_prompt = video_prompt
        self._tasks: Set[asyncio.Task] = set()

    # ── Queries ──────────────────────────────────────────────────────────

    def get_status(self, job_id: str) -> Optional[JobStatusView]:
        job = self.registry.get(job_id)
        return status_view(job) if job else None

    def get_result(self, job_id: str) -> Optional[ResultResponse]:
        job = self.registry.get(job_id)
        return result_view(job) if job else None

    # ── Submission ───────────────────────────────────────────────────────

    def create_job(self, prompt: str, generate_videos: bool) -> Job:
        job = Job(id=str(uuid.uuid4()), prompt=prompt, generate_videos=generate_videos)
        self.registry.create(job)
        metrics.inc_counter("jobs.submitted")
        return job

    def submit_job(
        self,
        image_bytes: bytes,
        prompt: str,
        generate_videos: bool = True,
        mime_type: str = "image/png",
    ) -> str:
        """
        Register a job and start its pipeline in the background.

        Must be called from a running event loop. The job is in the
        registry before its id is returned.
        """
        job = self.create_job(prompt, generate_videos)
        image_base64 = base64.b64encode(image_bytes).decode("ascii")

        task = asyncio.create_task(self.run(job.id, image_base64, mime_type))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(f"[{job.id}] Job submitted (videos={generate_videos})")
        return job.id

    async def join(self):
        """Wait for every in-flight job task to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self):
        """Cancel in-flight jobs (process exit)."""
        for task in list(self._tasks):
            task.cancel()
        await self.join()

    # ── Pipeline ─────────────────────────────────────────────────────────

    async def run(self, job_id: str, image_base64: str, mime_type: str = "image/png") -> Job:
        """
        Run every stage for a registered job and return it in a terminal state.

        Anything that escapes the stages ends the job as failed here; this
        is the only place a job fails.
        """
        job = self.registry.get(job_id)
        if job is None:
            raise FatalPipelineError(f"Job {job_id} is not registered")

        metrics.add_gauge("active_jobs", 1)
        try:
            await self._run_stages(job, image_base64, mime_type)
            metrics.inc_counter("jobs.completed")
            logger.info(f"[{job_id}] Processing completed")
        except asyncio.CancelledError:
            if not job.is_terminal:
                job.fail("Job cancelled")
            raise
        except Exception as e:
            logger.error(f"[{job_id}] Processing failed: {e}", exc_info=True)
            metrics.inc_counter("jobs.failed")
            metrics.record_error("pipeline", type(e).__name__, str(e), job_id)
            if not job.is_terminal:
                job.fail(str(e) or type(e).__name__)
        finally:
            metrics.add_gauge("active_jobs", -1)

        return job

    async def _run_stages(self, job: Job, image_base64: str, mime_type: str):
        await self._generate_variations(job, image_base64, mime_type)

        if job.generate_videos:
            logger.info(f"[{job.id}] Creating videos...")
            job.enter_stage(JobStage.GENERATING_VIDEOS)

            for i, variation in enumerate(list(job.variations)):
                await self._animate_variation(job, i, variation)
                await self.policy.sleep(self.policy.video_delay)

        job.complete()

    async def _generate_variations(self, job: Job, image_base64: str, mime_type: str):
        logger.info(f"[{job.id}] Generating variations...")
        job.enter_stage(JobStage.GENERATING_VARIATIONS)
        job.advance(VARIATIONS_START)

        total = self.variation_count

        def on_result(i: int, result: EditResult):
            variation = Variation(
                id=f"var_{i + 1}",
                prompt=result.prompt,
                success=result.success,
                image_base64=result.image_base64 or image_base64,
                message=result.message,
            )
            variation.image_url = self.save_image(job.id, variation)
            job.variations.append(variation)

            if not variation.success:
                metrics.inc_counter("variations.failed")
                logger.warning(f"[{job.id}] {variation.id} failed: {variation.message}")

            job.advance(VARIATIONS_START + (VARIATIONS_DONE - VARIATIONS_START) * (i + 1) / total)

        await self.editor.generate_variations(
            image_base64, job.prompt, total, mime_type, on_result=on_result
        )
        job.advance(VARIATIONS_DONE)

    async def _animate_variation(self, job: Job, index: int, variation: Variation):
        """Submit one variation to Kling and wait for it; failures stay on the task."""
        band_start = VARIATIONS_DONE + VIDEO_BAND * index
        job.advance(min(band_start, VIDEO_PROGRESS_CAP))

        logger.info(f"[{job.id}] Creating video for variation {index + 1}...")
        submitted = await self.video_client.submit(variation.image_base64, self.video_prompt)

        task = VideoTask(
            id=f"video_{index + 1}",
            variation_id=variation.id,
            task_id=submitted.task_id,
        )
        job.videos.append(task)

        if not submitted.success:
            self._fail_video(job, task, submitted.error or "Failed to create video")
            return

        def on_progress(status: str, percent: float):
            service_status = VideoTaskStatus.from_service(status)
            if service_status in (VideoTaskStatus.SUBMITTED, VideoTaskStatus.PROCESSING):
                task.status = service_status
            job.advance(min(band_start + percent * VIDEO_BAND / 100, VIDEO_PROGRESS_CAP))

        try:
            result = await self.video_client.await_completion(task.task_id, on_progress)
        except FatalPipelineError:
            raise
        except PipelineError as e:
            self._fail_video(job, task, str(e))
            return

        if not result.video_url:
            self._fail_video(job, task, "Video task succeeded without a video URL")
            return

        task.succeed(result.video_url, result.duration)
        metrics.inc_counter("videos.succeeded")
        logger.info(f"[{job.id}] {task.id} ready: {result.video_url}")

    def _fail_video(self, job: Job, task: VideoTask, error: str):
        task.fail(error)
        metrics.inc_counter("videos.failed")
        metrics.record_error("video", "VideoTaskFailed", error, job.id)
        logger.warning(f"[{job.id}] {task.id} failed: {error}")
