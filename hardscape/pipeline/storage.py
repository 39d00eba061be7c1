"""
Local disk storage for generated variation images.

Files are written to RESULTS_DIR as {job_id}_{variation_id}.png and served
by the app under /results.
"""

import base64
import binascii
import logging
import os
from typing import Optional

from .. import config
from .models import Variation

logger = logging.getLogger(__name__)


def result_filename(job_id: str, variation_id: str) -> str:
    return f"{job_id}_{variation_id}.png"


def save_variation_image(job_id: str, variation: Variation, results_dir: Optional[str] = None) -> str:
    """
    Write a variation's image and return its public path.

    Falls back to the placeholder image path when there is nothing to
    write or the write fails.
    """
    results_dir = results_dir or config.RESULTS_DIR

    if not variation.image_base64:
        logger.error(f"[{job_id}] Empty image payload for variation {variation.id}")
        return config.PLACEHOLDER_IMAGE_URL

    try:
        image_bytes = base64.b64decode(variation.image_base64, validate=True)
        os.makedirs(results_dir, exist_ok=True)
        filename = result_filename(job_id, variation.id)
        path = os.path.join(results_dir, filename)
        with open(path, "wb") as f:
            f.write(image_bytes)
    except (binascii.Error, OSError) as e:
        logger.error(f"[{job_id}] Error saving variation {variation.id}: {e}")
        return config.PLACEHOLDER_IMAGE_URL

    logger.info(f"[{job_id}] Saved {variation.id} to {path} ({len(image_bytes)} bytes)")
    return f"/results/{filename}"
