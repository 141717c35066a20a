from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from caption_pipeline import __version__
from caption_pipeline.api.routes_jobs import router as jobs_router
from caption_pipeline.jobs.orchestrator import JobOrchestrator, build_orchestrator
from caption_pipeline.utils.log import logger


def create_app(orchestrator: JobOrchestrator | None = None) -> FastAPI:
    """
    Build the HTTP app. Tests pass a pre-wired orchestrator; otherwise one is
    built from process config on startup and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = orchestrator is None
        orch = orchestrator or build_orchestrator()
        app.state.orchestrator = orch
        logger.info("server_started", version=__version__)
        try:
            yield
        finally:
            if owned:
                await orch.aclose()
            else:
                await orch.shutdown()
            logger.info("server_stopped")

    app = FastAPI(title="caption-pipeline", version=__version__, lifespan=lifespan)
    app.include_router(jobs_router)
    return app
