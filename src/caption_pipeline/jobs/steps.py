from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from caption_pipeline.errors import AggregateFailureError, ControlSignal
from caption_pipeline.jobs.control import ControlToken
from caption_pipeline.jobs.models import StepStatus
from caption_pipeline.jobs.store import JobStore
from caption_pipeline.utils.log import logger

T = TypeVar("T")


@dataclass(slots=True)
class StepHandle:
    """
    Passed to a step's work function. `retries` is reported in the step log;
    `note()` records a human-readable progress message.
    """

    job_id: str
    name: str
    retries: int = 0
    notes: list[str] = field(default_factory=list)

    def note(self, msg: str) -> None:
        self.notes.append(str(msg))
        logger.info("step_note", job_id=self.job_id, step=self.name, note=str(msg))

    @property
    def last_note(self) -> str:
        return self.notes[-1] if self.notes else ""


class StepRunner:
    """
    Wraps every named step with control checks, StepLog entries and progress.

    `tokens` is the orchestrator's live control map (job_id -> ControlToken).
    """

    def __init__(self, store: JobStore, tokens: Mapping[str, ControlToken]) -> None:
        self.store = store
        self.tokens = tokens

    def check_control(self, job_id: str) -> None:
        token = self.tokens.get(job_id)
        if token is not None:
            token.check()

    async def run_step(
        self,
        job_id: str,
        name: str,
        target_progress: int,
        work: Callable[[StepHandle], Awaitable[T]],
    ) -> T:
        self.check_control(job_id)

        job = self.store.require(job_id)
        target = max(0, min(100, int(target_progress)))
        # previous step's value: below this target, never lower than before
        start_progress = int(job.progress)
        self.store.update_progress(job_id, step=name, progress=start_progress)
        self.store.add_log(job_id, name, StepStatus.STARTED, progress=start_progress)
        logger.info("step_started", job_id=job_id, step=name, progress=start_progress)

        handle = StepHandle(job_id=job_id, name=name)
        t0 = time.monotonic()
        try:
            result = await work(handle)
        except Exception as ex:
            dt_ms = int((time.monotonic() - t0) * 1000)
            retries = handle.retries
            if isinstance(ex, AggregateFailureError):
                retries = max(retries, ex.attempts - 1)
            self.store.add_log(
                job_id,
                name,
                StepStatus.FAILED,
                message=str(ex),
                retry_count=retries,
                duration_ms=dt_ms,
                progress=start_progress,
            )
            logger.warning(
                "step_failed",
                job_id=job_id,
                step=name,
                error=str(ex),
                retries=retries,
                duration_ms=dt_ms,
            )
            raise

        dt_ms = int((time.monotonic() - t0) * 1000)
        done = max(target, start_progress)
        self.store.update_progress(job_id, step=name, progress=done)
        self.store.add_log(
            job_id,
            name,
            StepStatus.COMPLETED,
            message=handle.last_note,
            retry_count=handle.retries,
            duration_ms=dt_ms,
            progress=done,
        )
        logger.info(
            "step_completed",
            job_id=job_id,
            step=name,
            progress=done,
            retries=handle.retries,
            duration_ms=dt_ms,
        )
        return result


async def run_optional(runner: StepRunner, job_id: str, name: str, target: int, work: Callable[[StepHandle], Awaitable[Any]]) -> Any:
    """
    Run a step whose failure must not fail the job. The failure is still
    logged as `failed`; control signals always propagate.
    """
    try:
        return await runner.run_step(job_id, name, target, work)
    except ControlSignal:
        raise
    except Exception as ex:
        logger.info("optional_step_skipped", job_id=job_id, step=name, error=str(ex))
        return None
