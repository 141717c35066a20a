from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from sqlitedict import SqliteDict  # type: ignore

from caption_pipeline.errors import JobNotFound, JobStateError
from caption_pipeline.jobs.models import (
    TRANSITIONS,
    Job,
    JobKind,
    JobStatus,
    StepLog,
    StepStatus,
    default_job_name,
    new_id,
    now_utc,
)
from caption_pipeline.utils.log import logger


class JobStore:
    """
    Jobs and their step logs, persisted on every transition.

    Lifecycle rules live here (see `TRANSITIONS`); an illegal move raises
    `JobStateError` and leaves the stored row untouched.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _jobs(self) -> SqliteDict:
        # Open/close per operation (avoids cross-thread SQLite handle issues)
        return SqliteDict(str(self.db_path), tablename="jobs", autocommit=True)

    def _logs(self) -> SqliteDict:
        return SqliteDict(str(self.db_path), tablename="step_logs", autocommit=True)

    # --- jobs ---
    def create(
        self,
        kind: JobKind | str,
        *,
        name: str | None = None,
        record_ref: str | None = None,
        input: dict[str, Any] | None = None,
    ) -> Job:
        k = JobKind(kind.value if isinstance(kind, JobKind) else str(kind))
        job = Job(
            id=new_id(),
            name=name or default_job_name(k, record_ref),
            kind=k,
            status=JobStatus.PENDING,
            created_at=now_utc(),
            record_ref=record_ref or None,
            input=dict(input or {}),
        )
        with self._lock, self._jobs() as db:
            db[job.id] = job.to_dict()
        logger.info("job_created", job_id=job.id, kind=k.value, name=job.name)
        return job

    def get(self, id: str) -> Job | None:
        with self._lock, self._jobs() as db:
            raw = db.get(str(id))
        if raw is None:
            return None
        return Job.from_dict(raw)

    def require(self, id: str) -> Job:
        job = self.get(id)
        if job is None:
            raise JobNotFound(id)
        return job

    def list_recent(self, limit: int = 50) -> list[Job]:
        with self._lock, self._jobs() as db:
            items = list(db.values())
        jobs = [Job.from_dict(v) for v in items]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[: max(0, int(limit))]

    def _transition(self, id: str, allowed_from: set[JobStatus], to: JobStatus, **fields: Any) -> Job:
        with self._lock, self._jobs() as db:
            raw = db.get(str(id))
            if raw is None:
                raise JobNotFound(id)
            job = Job.from_dict(raw)
            if job.status not in allowed_from or to not in TRANSITIONS[job.status]:
                raise JobStateError(f"cannot move job {id} from {job.status.value} to {to.value}")
            job.status = to
            for k, v in fields.items():
                setattr(job, k, v)
            db[job.id] = job.to_dict()
        return job

    def start(self, id: str) -> Job:
        # A (re)start is a fresh run: progress and timing restart from zero.
        return self._transition(
            id,
            {JobStatus.PENDING, JobStatus.PAUSED},
            JobStatus.RUNNING,
            started_at=now_utc(),
            ended_at=None,
            duration_s=None,
            current_step="",
            progress=0,
            error=None,
        )

    def update_progress(self, id: str, *, step: str, progress: int) -> Job:
        return self._transition(
            id,
            {JobStatus.RUNNING},
            JobStatus.RUNNING,
            current_step=str(step),
            progress=max(0, min(100, int(progress))),
        )

    def _finish_fields(self, id: str) -> dict[str, Any]:
        job = self.require(id)
        ended = now_utc()
        return {"ended_at": ended, "duration_s": job.elapsed_s(ended)}

    def complete(self, id: str, output: dict[str, Any] | None) -> Job:
        return self._transition(
            id,
            {JobStatus.RUNNING},
            JobStatus.COMPLETED,
            progress=100,
            output=output,
            error=None,
            **self._finish_fields(id),
        )

    def fail(self, id: str, error: str) -> Job:
        return self._transition(
            id,
            {JobStatus.RUNNING, JobStatus.PENDING},
            JobStatus.FAILED,
            error=str(error),
            **self._finish_fields(id),
        )

    def mark_paused(self, id: str) -> Job:
        return self._transition(id, {JobStatus.RUNNING}, JobStatus.PAUSED)

    def mark_cancelled(self, id: str) -> Job:
        return self._transition(
            id,
            {JobStatus.RUNNING, JobStatus.PENDING},
            JobStatus.CANCELLED,
            **self._finish_fields(id),
        )

    # --- step logs ---
    def add_log(
        self,
        job_id: str,
        step: str,
        status: StepStatus | str,
        *,
        message: str = "",
        retry_count: int = 0,
        duration_ms: int | None = None,
        progress: int = 0,
    ) -> StepLog:
        st = StepStatus(status.value if isinstance(status, StepStatus) else str(status))
        with self._lock, self._logs() as db:
            rows = list(db.get(str(job_id)) or [])
            entry = StepLog(
                job_id=str(job_id),
                seq=len(rows) + 1,
                step=str(step),
                status=st,
                message=str(message or ""),
                retry_count=int(retry_count),
                duration_ms=duration_ms,
                progress=int(progress),
            )
            rows.append(entry.to_dict())
            db[str(job_id)] = rows
        return entry

    def logs(self, job_id: str) -> list[StepLog]:
        with self._lock, self._logs() as db:
            rows = list(db.get(str(job_id)) or [])
        out = [StepLog.from_dict(r) for r in rows]
        out.sort(key=lambda e: e.seq)
        return out
