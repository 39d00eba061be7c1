"""
Worker configuration.

Everything is read from the environment (a local .env is honoured via
python-dotenv). Provider keys have no baked-in defaults: when a key is
missing the corresponding external call fails and is recorded as a
per-item failure on the job.
"""

import os
from datetime import datetime, timezone

from dotenv import load_dotenv

load_dotenv()

# ── Gemini (image editing) ───────────────────────────────────────────────────
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY", "")
GEMINI_IMAGE_MODEL = os.environ.get("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image-preview")
GEMINI_IMAGE_ENDPOINT = (
    f"https://generativelanguage.googleapis.com/v1beta/models/"
    f"{GEMINI_IMAGE_MODEL}:generateContent"
)

# ── Kling (image → video) ────────────────────────────────────────────────────
KLING_ACCESS_KEY = os.environ.get("KLING_ACCESS_KEY", "")
KLING_SECRET_KEY = os.environ.get("KLING_SECRET_KEY", "")
KLING_API_BASE = os.environ.get("KLING_API_BASE", "https://api-singapore.klingai.com")
KLING_MODEL = os.environ.get("KLING_MODEL", "kling-v2-1")
VIDEO_DURATION = int(os.environ.get("VIDEO_DURATION", "10"))

VIDEO_PROMPT = "Cinematic camera movement, slow dolly in, professional real estate showcase"
DEFAULT_PROMPT = "Transform into luxury outdoor living space"

# ── Pipeline pacing ──────────────────────────────────────────────────────────
VARIATION_COUNT = int(os.environ.get("VARIATION_COUNT", "3"))
VARIATION_DELAY = float(os.environ.get("VARIATION_DELAY", "1"))    # seconds between edits
VIDEO_DELAY = float(os.environ.get("VIDEO_DELAY", "2"))            # seconds between video submissions
POLL_INTERVAL = float(os.environ.get("POLL_INTERVAL", "5"))        # seconds between status checks
MAX_POLL_ATTEMPTS = int(os.environ.get("MAX_POLL_ATTEMPTS", "180"))  # ~15 minutes

# ── Email (Resend) ───────────────────────────────────────────────────────────
RESEND_API_KEY = os.environ.get("RESEND_API_KEY", "")
RESEND_API_BASE = "https://api.resend.com"
EMAIL_FROM = os.environ.get("EMAIL_FROM", "AI Hardscape Designer <onboarding@resend.dev>")
ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "")

# ── Files ────────────────────────────────────────────────────────────────────
BASE_DIR = os.environ.get("HARDSCAPE_DATA_DIR", os.getcwd())
RESULTS_DIR = os.environ.get("RESULTS_DIR", os.path.join(BASE_DIR, "results"))
LEADS_FILE = os.environ.get("LEADS_FILE", os.path.join(BASE_DIR, "leads.json"))
PLACEHOLDER_IMAGE_URL = "/images/placeholder.png"
MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10MB

# ── Server ───────────────────────────────────────────────────────────────────
PORT = int(os.environ.get("PORT", "3000"))
DEPLOYMENT_VERSION = os.environ.get(
    "DEPLOYMENT_VERSION",
    "2.0.1-" + datetime.now(timezone.utc).isoformat(),
)
