from __future__ import annotations

from pathlib import Path

import pytest

from caption_pipeline.errors import JobNotFound, JobStateError
from caption_pipeline.jobs.models import JobKind, JobStatus, StepStatus
from caption_pipeline.jobs.store import JobStore


def test_create_defaults(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "jobs.db")
    job = store.create("video", record_ref="A-12", input={"data": {"lyrics": "x"}})
    assert job.status == JobStatus.PENDING
    assert job.kind == JobKind.VIDEO
    assert job.progress == 0
    assert job.name.startswith("VIDEO-A-12-")
    assert store.require(job.id).input == {"data": {"lyrics": "x"}}

    manual = store.create(JobKind.VOICE, name="my note")
    assert manual.name == "my note"
    assert manual.record_ref is None


def test_full_lifecycle_persists(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "jobs.db")
    job = store.create("voice")
    store.start(job.id)
    store.update_progress(job.id, step="transcribe", progress=50)
    done = store.complete(job.id, {"version": "2.0"})
    assert done.status == JobStatus.COMPLETED
    assert done.progress == 100
    assert done.ended_at is not None
    assert done.duration_s is not None and done.duration_s >= 0

    reopened = JobStore(tmp_path / "jobs.db").require(job.id)
    assert reopened.output == {"version": "2.0"}
    assert reopened.current_step == "transcribe"


def test_illegal_transitions_leave_row_untouched(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "jobs.db")
    job = store.create("video")
    with pytest.raises(JobStateError):
        store.complete(job.id, {})
    with pytest.raises(JobStateError):
        store.mark_paused(job.id)
    assert store.require(job.id).status == JobStatus.PENDING

    store.start(job.id)
    store.fail(job.id, "boom")
    for op in (lambda: store.start(job.id), lambda: store.mark_cancelled(job.id)):
        with pytest.raises(JobStateError):
            op()
    after = store.require(job.id)
    assert after.status == JobStatus.FAILED
    assert after.error == "boom"


def test_paused_job_restarts_fresh(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "jobs.db")
    job = store.create("video")
    store.start(job.id)
    store.update_progress(job.id, step="align", progress=70)
    store.mark_paused(job.id)
    with pytest.raises(JobStateError):
        store.fail(job.id, "nope")

    again = store.start(job.id)
    assert again.status == JobStatus.RUNNING
    assert again.progress == 0
    assert again.current_step == ""


def test_pending_job_can_be_cancelled(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "jobs.db")
    job = store.create("video")
    assert store.mark_cancelled(job.id).status == JobStatus.CANCELLED
    assert JobStatus.CANCELLED.terminal


def test_unknown_job(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "jobs.db")
    assert store.get("missing") is None
    with pytest.raises(JobNotFound):
        store.require("missing")
    with pytest.raises(JobNotFound):
        store.start("missing")


def test_progress_is_clamped(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "jobs.db")
    job = store.create("video")
    store.start(job.id)
    assert store.update_progress(job.id, step="x", progress=150).progress == 100
    assert store.update_progress(job.id, step="x", progress=-3).progress == 0


def test_step_logs_are_sequenced_per_job(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "jobs.db")
    a = store.create("video")
    b = store.create("video")
    store.add_log(a.id, "fetch_record", StepStatus.STARTED)
    store.add_log(b.id, "fetch_record", "started")
    store.add_log(a.id, "fetch_record", StepStatus.COMPLETED, message="ok", duration_ms=12, progress=5)
    store.add_log(a.id, "transcribe", StepStatus.FAILED, message="HTTP 503", retry_count=2)

    logs = store.logs(a.id)
    assert [e.seq for e in logs] == [1, 2, 3]
    assert [(e.step, e.status) for e in logs] == [
        ("fetch_record", StepStatus.STARTED),
        ("fetch_record", StepStatus.COMPLETED),
        ("transcribe", StepStatus.FAILED),
    ]
    assert logs[1].duration_ms == 12
    assert logs[2].retry_count == 2
    assert [e.seq for e in store.logs(b.id)] == [1]
    assert store.logs("nobody") == []


def test_list_recent_limit(tmp_path: Path) -> None:
    store = JobStore(tmp_path / "jobs.db")
    ids = {store.create("video").id for _ in range(3)}
    recent = store.list_recent(2)
    assert len(recent) == 2
    assert {j.id for j in recent} <= ids
    assert store.list_recent(0) == []
