"""
Kling AI integration: image → video.

Every request carries a freshly signed HS256 token built from the
access/secret key pair. Tasks are submitted once and then polled until
they succeed, fail, or the poll budget runs out.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from typing import Callable, Optional

import httpx
from pydantic import BaseModel

from . import config
from .errors import TransportError, VideoTaskFailed, VideoTaskTimeout
from .timing import BackoffPolicy

logger = logging.getLogger(__name__)

TOKEN_TTL = 3600  # seconds
TOKEN_AUDIENCE = "kling-api"

STATUS_SUCCEED = "succeed"
STATUS_FAILED = "failed"
STATUS_ERROR = "error"  # our own marker for a status check that did not get an answer


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_json(obj: dict) -> str:
    return _b64url(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


def sign(access_key: str, secret_key: str, now: Optional[int] = None) -> str:
    """
    Build a one-hour bearer token for the Kling API.

    Each call gets its own random `jti`, so tokens must not be reused.
    """
    now = int(time.time()) if now is None else now

    header = {"alg": "HS256", "typ": "JWT"}
    payload = {
        "iss": access_key,
        "sub": access_key,
        "aud": TOKEN_AUDIENCE,
        "exp": now + TOKEN_TTL,
        "nbf": now,
        "iat": now,
        "jti": secrets.token_hex(16),
        "access_key": access_key,
    }

    signing_input = f"{_b64url_json(header)}.{_b64url_json(payload)}"
    signature = hmac.new(
        secret_key.encode("utf-8"),
        signing_input.encode("ascii"),
        hashlib.sha256,
    ).digest()

    return f"{signing_input}.{_b64url(signature)}"


class SubmitResult(BaseModel):
    success: bool
    task_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None


class PollResult(BaseModel):
    success: bool
    status: str
    message: Optional[str] = None
    video_url: Optional[str] = None
    duration: Optional[float] = None


ProgressCallback = Callable[[str, float], None]


def _parse_duration(value) -> Optional[float]:
    # Kling reports duration as a string, e.g. "10.0"
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _text(value) -> Optional[str]:
    return value if isinstance(value, str) else None


def _first_video(task_result) -> Optional[dict]:
    if not isinstance(task_result, dict):
        return None
    videos = task_result.get("videos")
    if not isinstance(videos, list) or not videos or not isinstance(videos[0], dict):
        return None
    return videos[0]


class KlingClient:
    """Thin async client for the image2video endpoints."""

    def __init__(
        self,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        policy: Optional[BackoffPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30,
    ):
        self.access_key = config.KLING_ACCESS_KEY if access_key is None else access_key
        self.secret_key = config.KLING_SECRET_KEY if secret_key is None else secret_key
        self.base_url = (base_url or config.KLING_API_BASE).rstrip("/")
        self.policy = policy or BackoffPolicy()
        self._transport = transport
        self._timeout = timeout

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {sign(self.access_key, self.secret_key)}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        """Send a signed request and return the envelope's `data` on code 0."""
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.request(method, url, headers=self._headers(), **kwargs)
            body = resp.json()
        except httpx.HTTPError as e:
            raise TransportError(f"Kling request failed: {e}") from e
        except ValueError as e:
            raise TransportError(f"Kling returned invalid JSON ({resp.status_code})") from e

        if resp.is_success and isinstance(body, dict) and body.get("code") == 0:
            data = body.get("data") or {}
            if not isinstance(data, dict):
                raise TransportError(f"Kling returned malformed data: {data!r}")
            return data

        message = body.get("message") if isinstance(body, dict) else None
        raise TransportError(message or f"Kling API error {resp.status_code}")

    async def submit(
        self,
        image_base64: str,
        prompt: str,
        model: Optional[str] = None,
        duration: Optional[int] = None,
    ) -> SubmitResult:
        """Start an image2video task. Errors come back as success=False."""
        payload = {
            "model_name": model or config.KLING_MODEL,
            "mode": "pro",
            "duration": str(duration or config.VIDEO_DURATION),
            "image": image_base64,
            "prompt": prompt,
            "cfg_scale": 0.7,
            "negative_prompt": "",
        }

        try:
            data = await self._request("POST", "/v1/videos/image2video", json=payload)
        except TransportError as e:
            logger.error(f"Kling submit failed: {e}")
            return SubmitResult(success=False, error=str(e) or "Failed to create video")

        task_id = data.get("task_id")
        if not task_id or not isinstance(task_id, (str, int)):
            return SubmitResult(success=False, error=f"Kling submit returned no task_id: {data}")

        logger.info(f"Kling image2video submitted: task_id={task_id}")
        return SubmitResult(success=True, task_id=str(task_id), status=_text(data.get("task_status")))

    async def poll_once(self, task_id: str) -> PollResult:
        try:
            data = await self._request("GET", f"/v1/videos/image2video/{task_id}")
        except TransportError as e:
            logger.warning(f"Kling status check error for {task_id}: {e}")
            return PollResult(success=False, status=STATUS_ERROR, message=str(e))

        result = PollResult(
            success=True,
            status=_text(data.get("task_status")) or STATUS_ERROR,
            message=_text(data.get("task_status_msg")),
        )

        if result.status == STATUS_SUCCEED:
            video = _first_video(data.get("task_result"))
            if video:
                result.video_url = _text(video.get("url"))
                result.duration = _parse_duration(video.get("duration"))

        return result

    async def await_completion(
        self,
        task_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PollResult:
        """
        Poll until the task reaches a terminal state.

        Raises VideoTaskFailed when Kling reports failure and
        VideoTaskTimeout once `max_poll_attempts` checks found it unfinished.
        """
        attempts = self.policy.max_poll_attempts

        for attempt in range(attempts):
            if attempt > 0:
                await self.policy.sleep(self.policy.poll_interval)

            status = await self.poll_once(task_id)
            logger.debug(f"Kling poll #{attempt + 1} for {task_id}: {status.status}")

            if on_progress:
                on_progress(status.status, self.policy.estimate_percent(attempt))

            if status.status == STATUS_SUCCEED:
                return status
            if status.status == STATUS_FAILED:
                raise VideoTaskFailed(status.message or "Video generation failed")

        raise VideoTaskTimeout(
            f"Timeout waiting for video after {attempts} attempts"
        )
