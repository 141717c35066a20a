from __future__ import annotations

from typing import Any

import httpx

from caption_pipeline.config import get_settings
from caption_pipeline.errors import ParseError

USER_AGENT = "caption-pipeline/1.0"


def make_client(*, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """
    Shared outbound client. Tests pass an `httpx.MockTransport`.
    """
    t = float(timeout if timeout is not None else get_settings().http_timeout_sec)
    kwargs: dict[str, Any] = {
        "timeout": httpx.Timeout(t),
        "headers": {"User-Agent": USER_AGENT},
        "follow_redirects": True,
    }
    if transport is not None:
        kwargs["transport"] = transport
    return httpx.AsyncClient(**kwargs)


def json_body(resp: httpx.Response, *, provider_id: str = "", what: str = "") -> Any:
    try:
        return resp.json()
    except ValueError as ex:
        raise ParseError(
            f"{what or provider_id or 'provider'} returned invalid JSON", provider_id=provider_id, status=resp.status_code
        ) from ex
