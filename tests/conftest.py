import base64
import json
import os
import sys
import tempfile
from collections import Counter
from io import BytesIO

# Keep generated files out of the working tree; must happen before hardscape.config loads.
_TMP = tempfile.mkdtemp(prefix="hardscape-tests-")
os.environ.setdefault("RESULTS_DIR", os.path.join(_TMP, "results"))
os.environ.setdefault("LEADS_FILE", os.path.join(_TMP, "leads.json"))

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import pytest
from PIL import Image

from hardscape import metrics
from hardscape.gemini import ImageEditor
from hardscape.kling import KlingClient
from hardscape.pipeline.orchestrator import JobOrchestrator
from hardscape.pipeline.registry import JobRegistry
from hardscape.timing import BackoffPolicy


def png_bytes(color=(120, 160, 90)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (4, 4), color).save(buf, "PNG")
    return buf.getvalue()


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def gemini_image_response(data_b64: str, camel_case: bool = True) -> httpx.Response:
    part = (
        {"inlineData": {"mimeType": "image/png", "data": data_b64}}
        if camel_case
        else {"inline_data": {"mime_type": "image/png", "data": data_b64}}
    )
    return httpx.Response(200, json={
        "candidates": [{"content": {"parts": [{"text": "Here is your design."}, part]}}]
    })


def gemini_text_response(text: str = "I cannot edit this image.") -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self, on_sleep=None):
        self.calls = []
        self.on_sleep = on_sleep

    async def __call__(self, seconds):
        self.calls.append(seconds)
        if self.on_sleep:
            self.on_sleep(seconds)


class FakeGemini:
    """MockTransport handler answering generateContent calls in order."""

    def __init__(self, responses=None, on_request=None):
        self.responses = list(responses or [])
        self.requests = []
        self.on_request = on_request

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request:
            self.on_request(request)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return gemini_image_response(b64(f"edited-{len(self.requests)}".encode()))


class FakeKling:
    """
    MockTransport handler for the image2video endpoints.

    `statuses` maps task ids (task-1, task-2, ...) to the status sequence
    returned by successive polls; the last entry repeats.
    """

    def __init__(self, statuses=None, failing_submissions=(), on_request=None):
        self.statuses = statuses or {}
        self.failing_submissions = set(failing_submissions)
        self.submissions = []
        self.polls = Counter()
        self.auth_headers = []
        self.on_request = on_request

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.auth_headers.append(request.headers.get("Authorization"))
        if self.on_request:
            self.on_request(request)

        if request.method == "POST":
            self.submissions.append(json.loads(request.content))
            n = len(self.submissions)
            if n in self.failing_submissions:
                return httpx.Response(400, json={"code": 1201, "message": "Invalid image"})
            return httpx.Response(200, json={
                "code": 0,
                "message": "SUCCESS",
                "data": {"task_id": f"task-{n}", "task_status": "submitted"},
            })

        task_id = request.url.path.rsplit("/", 1)[-1]
        self.polls[task_id] += 1
        script = self.statuses.get(task_id, ["succeed"])
        status = script[min(self.polls[task_id] - 1, len(script) - 1)]

        data = {"task_id": task_id, "task_status": status, "task_status_msg": ""}
        if status == "failed":
            data["task_status_msg"] = "Content moderation rejected the image"
        if status == "succeed":
            data["task_result"] = {"videos": [{
                "id": f"vid-{task_id}",
                "url": f"https://cdn.example.com/{task_id}.mp4",
                "duration": "10.0",
            }]}
        return httpx.Response(200, json={"code": 0, "message": "SUCCESS", "data": data})


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def policy(sleeper):
    return BackoffPolicy(sleep=sleeper)


@pytest.fixture
def fake_gemini():
    return FakeGemini()


@pytest.fixture
def fake_kling():
    return FakeKling()


def make_editor(handler, policy, api_key="test-gemini-key"):
    return ImageEditor(
        api_key=api_key,
        endpoint="https://gemini.test/v1beta/models/image:generateContent",
        policy=policy,
        transport=httpx.MockTransport(handler),
    )


def make_kling(handler, policy):
    return KlingClient(
        access_key="ak-test",
        secret_key="sk-test",
        base_url="https://kling.test",
        policy=policy,
        transport=httpx.MockTransport(handler),
    )


def fake_save_image(job_id, variation):
    return f"/results/{job_id}_{variation.id}.png"


@pytest.fixture
def make_orchestrator(policy, fake_gemini, fake_kling):
    def _make(gemini=None, kling=None, save_image=fake_save_image, **kwargs):
        return JobOrchestrator(
            JobRegistry(),
            editor=make_editor(gemini or fake_gemini, policy),
            video_client=make_kling(kling or fake_kling, policy),
            policy=policy,
            save_image=save_image,
            **kwargs,
        )
    return _make
