import os
import time
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from . import config, leads, metrics
from .pipeline import get_orchestrator, pipeline_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ENDPOINTS = [
    "POST /process - Upload image for processing",
    "GET /status/{job_id} - Check job status",
    "GET /result/{job_id} - Get processing results",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Server starting with version: {config.DEPLOYMENT_VERSION}")
    metrics.set_gauge("start_time", time.time())
    yield
    logger.info("Server shutting down, cancelling in-flight jobs")
    await get_orchestrator().shutdown()


os.makedirs(config.RESULTS_DIR, exist_ok=True)

app = FastAPI(lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
app.include_router(pipeline_router)
app.mount("/results", StaticFiles(directory=config.RESULTS_DIR), name="results")


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "version": config.DEPLOYMENT_VERSION,
        "endpoints": ENDPOINTS,
        "jobs": get_orchestrator().registry.count_by_status(),
    }


@app.get("/version")
def version():
    return {
        "version": config.DEPLOYMENT_VERSION,
        "status": "ACTIVE",
    }


@app.get("/metrics")
def metrics_endpoint():
    metrics.set_gauge("jobs_tracked", len(get_orchestrator().registry))
    return metrics.get_snapshot()


@app.post("/send-email")
def send_email(request: leads.EmailRequest):
    try:
        leads.send_design_email(request)
    except leads.EmailError as e:
        logger.error(f"Email sending failed: {e}")
        metrics.record_error("send-email", type(e).__name__, str(e))
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to send email"})
    return {"success": True, "message": "Email sent successfully"}


@app.post("/webhook/lead-capture")
def lead_capture(lead: leads.Lead):
    logger.info(f"Lead captured: {lead.name} <{lead.email}> ({lead.type})")
    leads.append_lead(lead)
    leads.notify_new_lead(lead)
    return {"success": True}


if __name__ == "__main__":
    uvicorn.run("hardscape.main:app", host="0.0.0.0", port=config.PORT)
