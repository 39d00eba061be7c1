"""
FastAPI routes for the design pipeline.

  POST /process         - upload an image and start a job
  GET  /status/{job_id} - live stage/progress with item counts
  GET  /result/{job_id} - full results once the job has finished
"""

import logging
from io import BytesIO
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from PIL import Image, UnidentifiedImageError

from .. import config
from .models import JobResultView, JobStatusView, ProcessingNotice, ProcessResponse
from .orchestrator import JobOrchestrator
from .registry import JobRegistry

logger = logging.getLogger(__name__)

pipeline_router = APIRouter(tags=["pipeline"])

# Singleton orchestrator/registry for the process
_orchestrator: Optional[JobOrchestrator] = None


def get_orchestrator() -> JobOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = JobOrchestrator(JobRegistry())
    return _orchestrator


def detect_image_mime(data: bytes) -> str:
    """Return the upload's MIME type, raising 400 if it is not an image."""
    try:
        with Image.open(BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise HTTPException(status_code=400, detail=f"Uploaded file is not a valid image: {e}")
    return Image.MIME.get(fmt or "", "image/png")


@pipeline_router.post("/process", response_model=ProcessResponse)
async def process(
    image: Optional[UploadFile] = File(None),
    prompt: str = Form(config.DEFAULT_PROMPT),
    generate_videos: str = Form("true", alias="generateVideos"),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """Start processing an uploaded image; returns the job id immediately."""
    if image is None:
        raise HTTPException(status_code=400, detail="No image uploaded")

    data = await image.read()
    if not data:
        raise HTTPException(status_code=400, detail="No image uploaded")
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Image exceeds the 10MB upload limit")

    mime_type = detect_image_mime(data)
    logger.info(f"Upload received: {image.filename} ({mime_type}, {len(data)} bytes)")

    want_videos = generate_videos == "true"
    job_id = orchestrator.submit_job(data, prompt, want_videos, mime_type)

    return ProcessResponse(
        job_id=job_id,
        check_status=f"/status/{job_id}",
        get_results=f"/result/{job_id}",
    )


@pipeline_router.get("/status/{job_id}", response_model=JobStatusView)
async def get_status(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    status = orchestrator.get_status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return status


@pipeline_router.get("/result/{job_id}", response_model=JobResultView | ProcessingNotice)
async def get_result(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    result = orchestrator.get_result(job_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return result
