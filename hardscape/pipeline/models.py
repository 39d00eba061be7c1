"""
Pydantic models and enums for the design pipeline.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..errors import JobStateError


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Job Status ───────────────────────────────────────────────────────────────

class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStage(str, Enum):
    GENERATING_VARIATIONS = "generating_variations"
    GENERATING_VIDEOS = "generating_videos"


STAGE_ORDER = [JobStage.GENERATING_VARIATIONS, JobStage.GENERATING_VIDEOS]


class VideoTaskStatus(str, Enum):
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    SUCCEED = "succeed"
    FAILED = "failed"

    @classmethod
    def from_service(cls, raw: str) -> "VideoTaskStatus":
        """Map a Kling task_status; anything unknown is still in flight."""
        try:
            return cls(raw)
        except ValueError:
            return cls.PROCESSING


# ── Records ──────────────────────────────────────────────────────────────────

class Variation(BaseModel):
    id: str
    prompt: str
    success: bool
    image_base64: str = Field(default="", repr=False)
    message: str = ""
    image_url: Optional[str] = None  # set once the image is written to disk


class VideoTask(BaseModel):
    id: str
    variation_id: str
    task_id: Optional[str] = None
    status: VideoTaskStatus = VideoTaskStatus.PROCESSING
    video_url: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[str] = None

    def succeed(self, video_url: str, duration: Optional[float]):
        self.video_url = video_url
        self.duration = duration
        self.status = VideoTaskStatus.SUCCEED

    def fail(self, error: str):
        self.error = error
        self.status = VideoTaskStatus.FAILED


class Job(BaseModel):
    """
    One end-to-end design request.

    Mutated only by its pipeline task through the transition methods
    below: stage and progress move forward, and the job leaves
    `processing` exactly once.
    """

    id: str
    status: JobStatus = JobStatus.PROCESSING
    stage: JobStage = JobStage.GENERATING_VARIATIONS
    progress: int = 0
    created_at: str = Field(default_factory=utc_now)
    completed_at: Optional[str] = None
    prompt: str
    generate_videos: bool = True
    variations: list[Variation] = Field(default_factory=list)
    videos: list[VideoTask] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def _require_processing(self, action: str):
        if self.is_terminal:
            raise JobStateError(f"Job {self.id} is already {self.status.value}; cannot {action}")

    def advance(self, progress: float):
        """Raise progress to `progress` (clamped to 0–100); never lowers it."""
        self._require_processing("advance progress")
        self.progress = max(self.progress, min(100, max(0, int(progress))))

    def enter_stage(self, stage: JobStage):
        self._require_processing(f"enter {stage.value}")
        if STAGE_ORDER.index(stage) < STAGE_ORDER.index(self.stage):
            raise JobStateError(f"Job {self.id} cannot go back from {self.stage.value} to {stage.value}")
        self.stage = stage

    def complete(self):
        self._require_processing("complete")
        self.progress = 100
        self.status = JobStatus.COMPLETED
        self.completed_at = utc_now()

    def fail(self, error: str):
        self._require_processing("fail")
        self.error = error
        self.status = JobStatus.FAILED
        self.completed_at = utc_now()


# ── API Views ────────────────────────────────────────────────────────────────

class ApiView(BaseModel):
    """Response body; serialized with camelCase keys (jobId, imageUrl, ...)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessResponse(ApiView):
    success: bool = True
    job_id: str
    message: str = "Processing started"
    check_status: str
    get_results: str


class JobStatusView(ApiView):
    job_id: str
    status: JobStatus
    stage: JobStage
    progress: int
    created_at: str
    completed_at: Optional[str] = None
    variations: int = 0
    videos: int = 0


class VariationView(ApiView):
    id: str
    prompt: str
    image_url: Optional[str] = None
    success: bool
    message: str = ""


class VideoView(ApiView):
    id: str
    variation_id: str
    video_url: Optional[str] = None
    duration: Optional[float] = None
    status: VideoTaskStatus
    error: Optional[str] = None


class JobResultView(ApiView):
    job_id: str
    status: JobStatus
    created_at: str
    completed_at: Optional[str] = None
    variations: list[VariationView] = Field(default_factory=list)
    videos: list[VideoView] = Field(default_factory=list)
    error: Optional[str] = None


class ProcessingNotice(ApiView):
    job_id: str
    status: JobStatus = JobStatus.PROCESSING
    message: str = "Still processing, check back later"


ResultResponse = Union[JobResultView, ProcessingNotice]
