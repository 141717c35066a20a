from __future__ import annotations

import time
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient

from caption_pipeline.server import create_app
from tests._helpers.fakes import VIDEO_INPUT, FakeRecords, make_orchestrator, make_settings


def _wait_terminal(c: TestClient, job_id: str, timeout_s: float = 10.0) -> dict[str, Any]:
    deadline = time.monotonic() + timeout_s
    while True:
        r = c.get(f"/api/jobs/{job_id}")
        assert r.status_code == 200, r.text
        d = r.json()
        if d["status"] in {"completed", "failed", "cancelled", "paused"} and not d["active"]:
            return d
        assert time.monotonic() < deadline, d
        time.sleep(0.05)


def _client(tmp_path: Path, **kw: Any) -> TestClient:
    orch = make_orchestrator(tmp_path, make_settings(tmp_path), **kw)
    return TestClient(create_app(orchestrator=orch))


def test_health(tmp_path: Path) -> None:
    with _client(tmp_path) as c:
        r = c.get("/api/health")
        assert r.status_code == 200
        assert r.json() == {"ok": True}


def test_create_job_and_read_back(tmp_path: Path) -> None:
    records = FakeRecords(VIDEO_INPUT)
    with _client(tmp_path, records=records) as c:
        r = c.post("/api/jobs", json={"kind": "video", "record_ref": "S-100", "name": "first"})
        assert r.status_code == 200, r.text
        created = r.json()
        assert created["name"] == "first"
        assert created["status"] == "pending"

        d = _wait_terminal(c, created["id"])
        assert d["status"] == "completed"
        assert d["progress"] == 100
        assert d["output"]["metadata"]["ragicCode"] == "S-100"

        logs = c.get(f"/api/jobs/{created['id']}/logs").json()["items"]
        assert logs[0]["step"] == "fetch_record"
        assert logs[0]["status"] == "started"
        assert [e["seq"] for e in logs] == list(range(1, len(logs) + 1))

        listed = c.get("/api/jobs", params={"limit": 5}).json()
        assert listed["limit"] == 5
        assert [j["id"] for j in listed["items"]] == [created["id"]]
        assert "output" not in listed["items"][0]


def test_failed_job_reports_error(tmp_path: Path) -> None:
    with _client(tmp_path) as c:
        r = c.post("/api/jobs", json={"kind": "video", "data": {"lyrics": "x"}})
        d = _wait_terminal(c, r.json()["id"])
        assert d["status"] == "failed"
        assert "audioUrl" in d["error"]


def test_invalid_kind_rejected(tmp_path: Path) -> None:
    with _client(tmp_path) as c:
        r = c.post("/api/jobs", json={"kind": "podcast"})
        assert r.status_code == 422


def test_unknown_job_404(tmp_path: Path) -> None:
    with _client(tmp_path) as c:
        assert c.get("/api/jobs/nope").status_code == 404
        assert c.get("/api/jobs/nope/logs").status_code == 404
        assert c.post("/api/jobs/nope/pause").status_code == 404
        assert c.post("/api/jobs/nope/cancel").status_code == 404
        assert c.post("/api/jobs/nope/resume").status_code == 404


def test_control_on_finished_job_conflicts(tmp_path: Path) -> None:
    with _client(tmp_path) as c:
        r = c.post("/api/jobs", json={"kind": "video", "data": dict(VIDEO_INPUT)})
        job_id = r.json()["id"]
        assert _wait_terminal(c, job_id)["status"] == "completed"
        assert c.post(f"/api/jobs/{job_id}/pause").status_code == 409
        assert c.post(f"/api/jobs/{job_id}/cancel").status_code == 409
        r = c.post(f"/api/jobs/{job_id}/resume")
        assert r.status_code == 409
        assert "paused" in r.json()["detail"]
