from __future__ import annotations

from typing import Any

from caption_pipeline.jobs.context import RunContext
from caption_pipeline.pipelines.base import Pipeline, require


class VideoPipeline(Pipeline):
    """Music video: known lyrics aligned to the song's word timestamps."""

    kind = "video"
    targets = {
        "fetch_record": 5,
        "transcribe": 40,
        "align": 70,
        "correct": 85,
        "build_document": 95,
        "write_record": 100,
    }

    def validate(self, params: dict[str, Any]) -> None:
        require(params, "audioUrl")
        require(params, "lyrics")

    def source_text(self, ctx: RunContext) -> str:
        return str(ctx.params.get("lyrics") or "")

    async def run(self, ctx: RunContext) -> dict[str, Any]:
        await self.fetch_record(ctx)
        await self.transcribe(ctx)
        await self.align(ctx)
        await self.correct(ctx)
        doc = await self.build(ctx)
        await self.write_record(ctx)
        return doc
