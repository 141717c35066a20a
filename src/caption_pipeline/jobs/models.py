from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL


TERMINAL = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

# status -> statuses it may move to
TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset(
        {
            JobStatus.RUNNING,
            JobStatus.PAUSED,
            JobStatus.COMPLETED,
            JobStatus.FAILED,
            JobStatus.CANCELLED,
        }
    ),
    JobStatus.PAUSED: frozenset({JobStatus.RUNNING}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


class JobKind(str, Enum):
    VIDEO = "video"
    VOICE = "voice"


class StepStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


def now_utc() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


def default_job_name(kind: JobKind | str, record_ref: str | None) -> str:
    k = kind.value if isinstance(kind, JobKind) else str(kind)
    return f"{k.upper()}-{record_ref or 'manual'}-{int(time.time() * 1000)}"


def _parse_ts(s: str | None) -> datetime | None:
    if not s:
        return None
    try:
        return datetime.fromisoformat(str(s))
    except ValueError:
        return None


@dataclass(slots=True)
class Job:
    id: str
    name: str
    kind: JobKind
    status: JobStatus
    created_at: str
    record_ref: str | None = None
    current_step: str = ""
    progress: int = 0
    started_at: str | None = None
    ended_at: str | None = None
    duration_s: float | None = None
    input: dict[str, Any] = field(default_factory=dict)
    output: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["kind"] = self.kind.value
        d["status"] = self.status.value
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Job:
        dd = dict(d)
        dd.setdefault("record_ref", None)
        dd.setdefault("current_step", "")
        dd.setdefault("progress", 0)
        dd.setdefault("input", {})
        dd["kind"] = JobKind(str(dd["kind"]))
        dd["status"] = JobStatus(str(dd["status"]))
        dd["progress"] = int(dd.get("progress") or 0)
        return cls(**dd)

    def elapsed_s(self, end: str | None = None) -> float | None:
        a = _parse_ts(self.started_at)
        b = _parse_ts(end or self.ended_at)
        if a is None or b is None:
            return None
        return max(0.0, (b - a).total_seconds())


@dataclass(slots=True)
class StepLog:
    job_id: str
    seq: int
    step: str
    status: StepStatus
    message: str = ""
    retry_count: int = 0
    duration_ms: int | None = None
    progress: int = 0
    created_at: str = field(default_factory=now_utc)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> StepLog:
        dd = dict(d)
        dd["status"] = StepStatus(str(dd["status"]))
        return cls(**dd)
