"""
Read-only views of a job for the status and result endpoints.
"""

from .models import (
    Job,
    JobResultView,
    JobStatusView,
    ProcessingNotice,
    ResultResponse,
    VariationView,
    VideoView,
)


def status_view(job: Job) -> JobStatusView:
    """Live progress with item counts only; safe to read mid-run."""
    return JobStatusView(
        job_id=job.id,
        status=job.status,
        stage=job.stage,
        progress=job.progress,
        created_at=job.created_at,
        completed_at=job.completed_at,
        variations=len(job.variations),
        videos=len(job.videos),
    )


def result_view(job: Job) -> ResultResponse:
    """
    Full results once the job is terminal.

    While the job is still running only a ProcessingNotice is returned so
    callers never see half-built variation/video lists.
    """
    if not job.is_terminal:
        return ProcessingNotice(job_id=job.id, status=job.status)

    return JobResultView(
        job_id=job.id,
        status=job.status,
        created_at=job.created_at,
        completed_at=job.completed_at,
        variations=[
            VariationView(
                id=v.id,
                prompt=v.prompt,
                image_url=v.image_url,
                success=v.success,
                message=v.message,
            )
            for v in job.variations
        ],
        videos=[
            VideoView(
                id=t.id,
                variation_id=t.variation_id,
                video_url=t.video_url,
                duration=t.duration,
                status=t.status,
                error=t.error,
            )
            for t in job.videos
        ],
        error=job.error,
    )
