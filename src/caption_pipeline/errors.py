from __future__ import annotations


class CaptionPipelineError(Exception):
    """Base class for every error raised by the pipeline core."""


class ValidationError(CaptionPipelineError):
    """
    A required input field is missing. Never retried; fails the job immediately.
    """

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = str(field)
        super().__init__(message or f"missing required field: {self.field}")


class ProviderError(CaptionPipelineError):
    """
    Failure while calling an external capability provider.
    Every subclass is retried by the failover executor.
    """

    def __init__(self, message: str, *, provider_id: str = "", status: int | None = None) -> None:
        super().__init__(message)
        self.provider_id = str(provider_id or "")
        self.status = status


class ProviderTransportError(ProviderError):
    """Network failure, timeout or non-2xx HTTP status."""


class ProviderAuthError(ProviderError):
    """Credential rejected (401/403)."""


class ParseError(ProviderError):
    """Provider answered but the payload could not be parsed/validated."""


class TruncatedOutputError(ParseError):
    """Provider stopped at its output-length ceiling; the payload is incomplete."""


class NoProvidersError(CaptionPipelineError):
    def __init__(self, capability: str = "") -> None:
        self.capability = str(capability or "")
        suffix = f" for {self.capability}" if self.capability else ""
        super().__init__(f"no providers configured{suffix}")


class AggregateFailureError(CaptionPipelineError):
    """
    All providers/attempts exhausted. Keeps the attempt count and the last
    underlying error for diagnostics.
    """

    def __init__(self, attempts: int, last_error: BaseException | None, *, label: str = "") -> None:
        self.attempts = int(attempts)
        self.last_error = last_error
        self.label = str(label or "")
        prefix = f"{self.label}: " if self.label else ""
        if self.attempts == 0:
            msg = f"{prefix}no provider with credentials available (0 attempts)"
        else:
            msg = f"{prefix}all providers failed after {self.attempts} attempts; last error: {last_error}"
        super().__init__(msg)


class RecordStoreError(CaptionPipelineError):
    """Record-store fetch/write failure."""


class ControlSignal(CaptionPipelineError):
    """
    Internal interruption raised at a step boundary. Not a user-facing error.
    """

    status = ""


class JobPaused(ControlSignal):
    status = "paused"

    def __init__(self, job_id: str = "") -> None:
        super().__init__(f"job paused: {job_id}")


class JobCancelled(ControlSignal):
    status = "cancelled"

    def __init__(self, job_id: str = "") -> None:
        super().__init__(f"job cancelled: {job_id}")


class JobNotFound(CaptionPipelineError):
    def __init__(self, job_id: str) -> None:
        self.job_id = str(job_id)
        super().__init__(f"job not found: {self.job_id}")


class JobStateError(CaptionPipelineError):
    """Illegal lifecycle transition."""


def raise_for_provider_status(status: int, body: str, *, provider_id: str = "", what: str = "") -> None:
    """
    Map a non-2xx HTTP status to the provider error taxonomy.
    """
    st = int(status)
    if 200 <= st < 300:
        return
    label = what or provider_id or "provider"
    snippet = str(body or "")[:200]
    if st in {401, 403}:
        raise ProviderAuthError(
            f"{label} rejected credentials: HTTP {st} - {snippet}", provider_id=provider_id, status=st
        )
    raise ProviderTransportError(
        f"{label} error: HTTP {st} - {snippet}", provider_id=provider_id, status=st
    )
