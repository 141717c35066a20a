from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from contextlib import suppress
from typing import Any, TypeVar

from caption_pipeline.errors import (
    AggregateFailureError,
    ControlSignal,
    NoProvidersError,
    ValidationError,
)
from caption_pipeline.providers.models import FailoverResult, ProviderDescriptor, RetryPolicy
from caption_pipeline.utils.log import logger

T = TypeVar("T")


async def execute(
    providers: Sequence[ProviderDescriptor],
    operation: Callable[[ProviderDescriptor], Awaitable[T]],
    policy: RetryPolicy,
    *,
    on_progress: Callable[[ProviderDescriptor, int], Any] | None = None,
    label: str = "",
) -> FailoverResult:
    """
    Run `operation` against each provider in order until one succeeds.

    Each usable provider gets up to `policy.max_attempts` tries with a fixed
    `policy.delay_ms` pause between tries; providers without credentials are
    skipped and never called. Validation errors and control signals propagate
    immediately; anything else counts as a failed attempt.
    """
    if not providers:
        raise NoProvidersError()

    max_attempts = max(1, int(policy.max_attempts))
    delay_s = max(0, int(policy.delay_ms)) / 1000.0
    attempts = 0
    last_error: BaseException | None = None

    for provider in providers:
        if not provider.usable:
            logger.info("provider_skipped", provider=provider.id, label=label, reason="no_credentials")
            continue
        for attempt in range(1, max_attempts + 1):
            attempts += 1
            if on_progress is not None:
                with suppress(Exception):
                    on_progress(provider, attempt)
            try:
                value = await operation(provider)
            except (ValidationError, ControlSignal):
                raise
            except Exception as ex:
                last_error = ex
                logger.warning(
                    "provider_attempt_failed",
                    provider=provider.id,
                    label=label,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(ex),
                    error_type=type(ex).__name__,
                )
                if attempt < max_attempts and delay_s > 0:
                    await asyncio.sleep(delay_s)
                continue
            if attempts > 1:
                logger.info("provider_recovered", provider=provider.id, label=label, attempts=attempts)
            return FailoverResult(value=value, provider_id=provider.id, attempts=attempts)

    raise AggregateFailureError(attempts, last_error, label=label)
