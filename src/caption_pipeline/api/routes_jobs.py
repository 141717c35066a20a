from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from caption_pipeline.api.models import CreateJobRequest
from caption_pipeline.errors import JobNotFound, JobStateError, ValidationError
from caption_pipeline.jobs.orchestrator import JobOrchestrator

router = APIRouter()


def _get_orchestrator(request: Request) -> JobOrchestrator:
    orch = getattr(request.app.state, "orchestrator", None)
    if orch is None:
        raise HTTPException(status_code=500, detail="Job orchestrator not initialized")
    return orch


def _job_view(orch: JobOrchestrator, job_id: str, *, with_output: bool = True) -> dict[str, Any]:
    try:
        job = orch.get(job_id)
    except JobNotFound as ex:
        raise HTTPException(status_code=404, detail="Not found") from ex
    d = job.to_dict()
    if not with_output:
        d.pop("output", None)
    d["active"] = orch.is_active(job_id)
    return d


@router.get("/api/health")
async def health() -> dict[str, Any]:
    return {"ok": True}


@router.post("/api/jobs")
async def create_job(request: Request, body: CreateJobRequest) -> dict[str, Any]:
    orch = _get_orchestrator(request)
    try:
        job = orch.create_and_run(
            body.kind,
            record_ref=body.record_ref,
            data=body.data,
            overrides=body.overrides,
            name=body.name,
        )
    except ValidationError as ex:
        raise HTTPException(status_code=400, detail=str(ex)) from ex
    return {"id": job.id, "name": job.name, "status": job.status.value}


@router.get("/api/jobs")
async def list_jobs(request: Request, limit: int = 50) -> dict[str, Any]:
    orch = _get_orchestrator(request)
    limit = max(1, min(500, int(limit)))
    items = []
    for j in orch.list_recent(limit):
        d = j.to_dict()
        d.pop("output", None)
        d["active"] = orch.is_active(j.id)
        items.append(d)
    return {"items": items, "limit": limit}


@router.get("/api/jobs/{id}")
async def get_job(request: Request, id: str) -> dict[str, Any]:
    return _job_view(_get_orchestrator(request), id)


@router.get("/api/jobs/{id}/logs")
async def get_job_logs(request: Request, id: str) -> dict[str, Any]:
    orch = _get_orchestrator(request)
    try:
        logs = orch.logs(id)
    except JobNotFound as ex:
        raise HTTPException(status_code=404, detail="Not found") from ex
    return {"id": id, "items": [e.to_dict() for e in logs]}


@router.post("/api/jobs/{id}/pause")
async def pause_job(request: Request, id: str) -> dict[str, Any]:
    orch = _get_orchestrator(request)
    _job_view(orch, id, with_output=False)
    ok = orch.pause(id)
    if not ok:
        raise HTTPException(status_code=409, detail="Job is not running")
    return {"ok": True, "id": id}


@router.post("/api/jobs/{id}/cancel")
async def cancel_job(request: Request, id: str) -> dict[str, Any]:
    orch = _get_orchestrator(request)
    _job_view(orch, id, with_output=False)
    ok = orch.cancel(id)
    if not ok:
        raise HTTPException(status_code=409, detail="Job is not running")
    return {"ok": True, "id": id}


@router.post("/api/jobs/{id}/resume")
async def resume_job(request: Request, id: str) -> dict[str, Any]:
    orch = _get_orchestrator(request)
    try:
        job = orch.resume(id)
    except JobNotFound as ex:
        raise HTTPException(status_code=404, detail="Not found") from ex
    except JobStateError as ex:
        raise HTTPException(status_code=409, detail=str(ex)) from ex
    return {"ok": True, "id": job.id}
