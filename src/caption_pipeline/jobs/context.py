from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from caption_pipeline.jobs.models import JobKind
from caption_pipeline.utils.log import logger


@dataclass(slots=True)
class RunContext:
    """
    Transient values handed from step to step within one run.
    Discarded when the run ends; nothing here is persisted except via the store.
    """

    job_id: str
    kind: JobKind
    record_ref: str | None
    data: dict[str, Any] = field(default_factory=dict)
    overrides: dict[str, Any] = field(default_factory=dict)

    # filled by the steps
    params: dict[str, Any] = field(default_factory=dict)
    processed_text: str = ""
    transcript: Any = None
    lines: list[dict[str, Any]] = field(default_factory=list)
    document: dict[str, Any] | None = None
    started_monotonic: float = 0.0

    def bind_logger(self, **fields: Any):
        return logger.bind(job_id=self.job_id, kind=self.kind.value, **fields)
