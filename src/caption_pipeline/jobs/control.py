from __future__ import annotations

from dataclasses import dataclass

from caption_pipeline.errors import JobCancelled, JobPaused


@dataclass(slots=True)
class ControlToken:
    """
    Per-run pause/cancel flags. Flags are only read at step boundaries;
    an in-flight external call is never interrupted.
    """

    job_id: str
    paused: bool = False
    cancelled: bool = False

    def request_pause(self) -> None:
        self.paused = True

    def request_cancel(self) -> None:
        self.cancelled = True

    def check(self) -> None:
        # cancel wins over pause when both were requested
        if self.cancelled:
            raise JobCancelled(self.job_id)
        if self.paused:
            raise JobPaused(self.job_id)
