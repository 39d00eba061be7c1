"""
Design Pipeline

  Variations - three Gemini edits of the uploaded space
  Videos     - one Kling image2video task per variation
  Jobs live in an in-memory registry and are polled via /status and /result
"""

from .models import Job, JobStage, JobStatus, VideoTaskStatus
from .orchestrator import JobOrchestrator
from .registry import JobRegistry
from .routes import get_orchestrator, pipeline_router

__all__ = [
    "Job",
    "JobStage",
    "JobStatus",
    "VideoTaskStatus",
    "JobOrchestrator",
    "JobRegistry",
    "get_orchestrator",
    "pipeline_router",
]
