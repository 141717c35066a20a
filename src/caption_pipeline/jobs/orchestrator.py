from __future__ import annotations

import asyncio
import time
from contextlib import suppress
from typing import Any

import httpx

from caption_pipeline.config import get_settings
from caption_pipeline.errors import ControlSignal, JobCancelled, JobPaused, JobStateError, ValidationError
from caption_pipeline.jobs.context import RunContext
from caption_pipeline.jobs.control import ControlToken
from caption_pipeline.jobs.models import Job, JobKind, JobStatus, StepLog, StepStatus, now_utc
from caption_pipeline.jobs.steps import StepRunner
from caption_pipeline.jobs.store import JobStore
from caption_pipeline.notify.base import NotifyEvent
from caption_pipeline.notify.sender import Notifier
from caption_pipeline.pipelines.base import Pipeline, PipelineDeps
from caption_pipeline.pipelines.video import VideoPipeline
from caption_pipeline.pipelines.voice import VoicePipeline
from caption_pipeline.providers.registry import ProviderRegistry
from caption_pipeline.services.alignment import AlignmentService
from caption_pipeline.services.http import make_client
from caption_pipeline.services.records import RecordStore
from caption_pipeline.services.transcription import TranscriptionService
from caption_pipeline.settings_store import SettingsStore
from caption_pipeline.text.document import format_processing_time
from caption_pipeline.utils.log import logger, set_job_id

PIPELINES: dict[JobKind, type[Pipeline]] = {
    JobKind.VIDEO: VideoPipeline,
    JobKind.VOICE: VoicePipeline,
}


_STEP_ICONS = {StepStatus.COMPLETED: "✅", StepStatus.FAILED: "❌"}


def format_steps(logs: list[StepLog]) -> str:
    lines = []
    for e in logs:
        line = f"{_STEP_ICONS.get(e.status, '🔄')} {e.step}"
        if e.duration_ms is not None:
            line += f" ({e.duration_ms / 1000:.1f}s)"
        lines.append(line)
    return "\n".join(lines) if lines else "(none)"


def job_summary(job: Job, logs: list[StepLog] | None = None) -> dict[str, Any]:
    """Flat view of a job for notification templates and webhook payloads."""
    return {
        "id": job.id,
        "name": job.name,
        "kind": job.kind.value,
        "status": job.status.value,
        "step": job.current_step,
        "progress": job.progress,
        "ref": job.record_ref,
        "error": job.error,
        "duration": format_processing_time(job.duration_s) if job.duration_s is not None else None,
        "steps": format_steps(logs or []),
        "time": now_utc(),
    }


class JobOrchestrator:
    """
    Owns the live control map (job id -> ControlToken) and the asyncio task
    of every active run. All public methods must be called from the event
    loop thread.

    Status is finalized in exactly one place, `_run()`, after the pipeline
    returns or raises; pause/cancel only raise flags.
    """

    def __init__(
        self,
        store: JobStore,
        deps: PipelineDeps,
        *,
        notifier: Notifier | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.store = store
        self.deps = deps
        self.notifier = notifier
        self._client = client
        self._control: dict[str, ControlToken] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self.runner = StepRunner(store, self._control)

    # --- control surface ---
    def create_and_run(
        self,
        kind: JobKind | str,
        *,
        record_ref: str | None = None,
        data: dict[str, Any] | None = None,
        overrides: dict[str, Any] | None = None,
        name: str | None = None,
    ) -> Job:
        try:
            k = JobKind(kind.value if isinstance(kind, JobKind) else str(kind))
        except ValueError as ex:
            raise ValidationError("kind", f"unknown job kind: {kind}") from ex
        job = self.store.create(
            k,
            name=name,
            record_ref=record_ref,
            input={"data": dict(data or {}), "overrides": dict(overrides or {})},
        )
        self._launch(job.id)
        return job

    def pause(self, job_id: str) -> bool:
        token = self._control.get(job_id)
        if token is None:
            return False
        token.request_pause()
        logger.info("job_pause_requested", job_id=job_id)
        return True

    def cancel(self, job_id: str) -> bool:
        token = self._control.get(job_id)
        if token is None:
            return False
        token.request_cancel()
        logger.info("job_cancel_requested", job_id=job_id)
        return True

    def resume(self, job_id: str) -> Job:
        job = self.store.require(job_id)
        if job.status != JobStatus.PAUSED:
            raise JobStateError(f"job {job_id} is {job.status.value}, only paused jobs can be resumed")
        if job_id in self._control:
            raise JobStateError(f"job {job_id} is still active")
        self._launch(job_id)
        logger.info("job_resumed", job_id=job_id)
        return job

    # --- reads ---
    def get(self, job_id: str) -> Job:
        return self.store.require(job_id)

    def list_recent(self, limit: int = 50) -> list[Job]:
        return self.store.list_recent(limit)

    def logs(self, job_id: str) -> list[StepLog]:
        self.store.require(job_id)
        return self.store.logs(job_id)

    def is_active(self, job_id: str) -> bool:
        return job_id in self._control

    async def wait(self, job_id: str) -> Job:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task})
        return self.store.require(job_id)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        # tasks cancelled before their first step never reach _run
        for job_id in list(self._control):
            with suppress(JobStateError):
                self.store.fail(job_id, "interrupted: service shutdown")
        self._control.clear()

    async def aclose(self) -> None:
        await self.shutdown()
        if self._client is not None:
            await self._client.aclose()

    # --- run ---
    def _launch(self, job_id: str) -> None:
        token = ControlToken(job_id=job_id)
        self._control[job_id] = token
        task = asyncio.get_running_loop().create_task(self._run(job_id), name=f"job-{job_id}")
        self._tasks[job_id] = task

        def _done(t: asyncio.Task) -> None:
            if self._tasks.get(job_id) is t:
                self._tasks.pop(job_id, None)

        task.add_done_callback(_done)

    async def _run(self, job_id: str) -> None:
        set_job_id(job_id)
        try:
            job = self.store.start(job_id)
        except JobStateError as ex:
            self._control.pop(job_id, None)
            logger.warning("job_start_rejected", job_id=job_id, error=str(ex))
            return
        ctx = RunContext(
            job_id=job.id,
            kind=job.kind,
            record_ref=job.record_ref,
            data=dict(job.input.get("data") or {}),
            overrides=dict(job.input.get("overrides") or {}),
            started_monotonic=time.monotonic(),
        )
        log = ctx.bind_logger()
        log.info("job_started", name=job.name)
        pipeline = PIPELINES[job.kind](self.deps, self.runner)

        event: NotifyEvent | None = None
        try:
            document = await pipeline.run(ctx)
        except ControlSignal as sig:
            if isinstance(sig, JobPaused):
                job = self.store.mark_paused(job_id)
                event = NotifyEvent.PAUSE
                log.info("job_paused", step=job.current_step)
            elif isinstance(sig, JobCancelled):
                job = self.store.mark_cancelled(job_id)
                log.info("job_cancelled", step=job.current_step)
        except asyncio.CancelledError:
            with suppress(JobStateError):
                self.store.fail(job_id, "interrupted: service shutdown")
            log.warning("job_interrupted")
            self._control.pop(job_id, None)
            raise
        except Exception as ex:
            job = self.store.fail(job_id, str(ex))
            event = NotifyEvent.FAILURE
            log.error("job_failed", error=str(ex), error_type=type(ex).__name__, step=job.current_step)
        else:
            job = self.store.complete(job_id, document)
            event = NotifyEvent.SUCCESS
            log.info("job_completed", duration_s=job.duration_s)
        finally:
            set_job_id(None)

        self._control.pop(job_id, None)
        if event is not None and self.notifier is not None:
            await self.notifier.notify(event, job_summary(job, self.store.logs(job_id)))


def build_orchestrator(
    *,
    settings: SettingsStore | None = None,
    store: JobStore | None = None,
    client: httpx.AsyncClient | None = None,
) -> JobOrchestrator:
    """
    Wire the orchestrator from process config: settings store, job store,
    one shared HTTP client and the collaborators built on it.
    """
    s = get_settings()
    settings = settings or SettingsStore(s.settings_db_path(), seed=s.secret.seed_values())
    owned = client is None
    client = client or make_client()
    deps = PipelineDeps(
        settings=settings,
        registry=ProviderRegistry(settings),
        transcription=TranscriptionService(
            client,
            poll_interval_s=float(s.transcribe_poll_interval_sec),
            poll_max=int(s.transcribe_poll_max),
        ),
        alignment=AlignmentService(client, settings),
        records=RecordStore(client, settings),
    )
    return JobOrchestrator(
        store or JobStore(s.jobs_db_path()),
        deps,
        notifier=Notifier(client, settings, public_base_url=s.public_base_url),
        client=client if owned else None,
    )
