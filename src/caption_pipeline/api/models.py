from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class CreateJobRequest(BaseModel):
    kind: Literal["video", "voice"] = "video"
    record_ref: str | None = Field(default=None, max_length=128)
    name: str | None = Field(default=None, max_length=200)
    data: dict[str, Any] = Field(default_factory=dict)
    overrides: dict[str, Any] = Field(default_factory=dict)
