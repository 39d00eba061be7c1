import time

import pytest
from fastapi.testclient import TestClient

from conftest import png_bytes
from hardscape import config, main
from hardscape.pipeline import routes


@pytest.fixture
def orchestrator(make_orchestrator, monkeypatch):
    orch = make_orchestrator()
    monkeypatch.setattr(routes, "_orchestrator", orch)
    return orch


@pytest.fixture
def client(orchestrator):
    with TestClient(main.app) as c:
        yield c


def _wait_until_done(client, job_id, attempts=500):
    for _ in range(attempts):
        body = client.get(f"/status/{job_id}").json()
        if body["status"] != "processing":
            return body
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} did not finish")


def test_process_status_and_result_round(client):
    resp = client.post(
        "/process",
        files={"image": ("yard.png", png_bytes(), "image/png")},
        data={"prompt": "Test space", "generateVideos": "true"},
    )

    assert resp.status_code == 200
    body = resp.json()
    job_id = body["jobId"]
    assert body["success"] is True
    assert body["message"] == "Processing started"
    assert body["checkStatus"] == f"/status/{job_id}"
    assert body["getResults"] == f"/result/{job_id}"

    status = _wait_until_done(client, job_id)
    assert status["status"] == "completed"
    assert status["progress"] == 100
    assert status["variations"] == 3
    assert status["videos"] == 3

    result = client.get(f"/result/{job_id}").json()
    assert result["status"] == "completed"
    assert [v["id"] for v in result["variations"]] == ["var_1", "var_2", "var_3"]
    assert [v["status"] for v in result["videos"]] == ["succeed"] * 3
    assert result["error"] is None
    assert result["jobId"] == job_id
    assert result["completedAt"] is not None
    assert result["variations"][0]["imageUrl"].startswith("/results/")
    assert result["videos"][0]["variationId"] == "var_1"
    assert result["videos"][0]["videoUrl"] == "https://cdn.example.com/task-1.mp4"


def test_process_without_videos(client, orchestrator):
    resp = client.post(
        "/process",
        files={"image": ("yard.png", png_bytes(), "image/png")},
        data={"generateVideos": "false"},
    )
    job_id = resp.json()["jobId"]

    status = _wait_until_done(client, job_id)
    assert status["stage"] == "generating_variations"
    assert status["videos"] == 0
    assert orchestrator.registry.get(job_id).prompt == config.DEFAULT_PROMPT


@pytest.mark.parametrize("value, want_videos", [("true", True), ("yes", False), ("1", False), (None, True)])
def test_generate_videos_flag_is_true_only_for_the_string_true(client, orchestrator, value, want_videos):
    data = {} if value is None else {"generateVideos": value}
    resp = client.post("/process", files={"image": ("yard.png", png_bytes(), "image/png")}, data=data)

    assert resp.status_code == 200
    job_id = resp.json()["jobId"]
    assert orchestrator.registry.get(job_id).generate_videos is want_videos
    _wait_until_done(client, job_id)


def test_status_uses_camel_case_keys(client, orchestrator):
    job = orchestrator.create_job("yard", True)

    body = client.get(f"/status/{job.id}").json()

    assert body["jobId"] == job.id
    assert body["createdAt"] == job.created_at
    assert body["completedAt"] is None
    assert body["progress"] == 0


def test_process_requires_an_image(client):
    assert client.post("/process", data={"prompt": "x"}).status_code == 400


def test_process_rejects_non_images(client):
    resp = client.post("/process", files={"image": ("notes.txt", b"hello there", "text/plain")})
    assert resp.status_code == 400


def test_process_rejects_oversized_uploads(client, monkeypatch):
    monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 10)
    resp = client.post("/process", files={"image": ("yard.png", png_bytes(), "image/png")})
    assert resp.status_code == 413


def test_unknown_job_is_404(client):
    assert client.get("/status/does-not-exist").status_code == 404
    assert client.get("/result/does-not-exist").status_code == 404


def test_result_of_running_job_is_a_notice(client, orchestrator):
    job = orchestrator.create_job("yard", True)

    body = client.get(f"/result/{job.id}").json()

    assert body == {
        "jobId": job.id,
        "status": "processing",
        "message": "Still processing, check back later",
    }


def test_health_and_version(client, orchestrator):
    orchestrator.create_job("yard", False)

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["version"] == config.DEPLOYMENT_VERSION
    assert health["jobs"] == {"processing": 1}

    assert client.get("/version").json()["version"] == config.DEPLOYMENT_VERSION


def test_metrics_snapshot(client):
    snapshot = client.get("/metrics").json()
    assert "counters" in snapshot
    assert snapshot["gauges"]["jobs_tracked"] == 0
