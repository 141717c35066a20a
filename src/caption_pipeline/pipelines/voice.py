from __future__ import annotations

from typing import Any

from caption_pipeline.errors import ValidationError
from caption_pipeline.jobs.context import RunContext
from caption_pipeline.jobs.steps import StepHandle
from caption_pipeline.pipelines.base import Pipeline, require
from caption_pipeline.text.document import split_rules
from caption_pipeline.text.transforms import clean_transcript, smart_split


class VoicePipeline(Pipeline):
    """
    Spoken voice note: the script is cleaned and split into caption-sized
    lines before alignment.
    """

    kind = "voice"
    targets = {
        "fetch_record": 5,
        "split_text": 15,
        "transcribe": 50,
        "align": 80,
        "correct": 90,
        "build_document": 95,
        "write_record": 100,
    }

    def validate(self, params: dict[str, Any]) -> None:
        if not str(params.get("audioUrl") or "").strip() and not str(params.get("finalAudioUrl") or "").strip():
            raise ValidationError("audioUrl")
        require(params, "transcript")

    def audio_url(self, params: dict[str, Any]) -> str:
        return str(params.get("finalAudioUrl") or params.get("audioUrl") or "")

    def source_text(self, ctx: RunContext) -> str:
        return ctx.processed_text

    async def split_text(self, ctx: RunContext) -> str:
        rules = split_rules(self.deps.settings, self.kind)

        async def work(step: StepHandle) -> str:
            text = smart_split(clean_transcript(str(ctx.params.get("transcript") or "")), rules)
            step.note(f"{len(text.splitlines())} lines")
            return text

        ctx.processed_text = await self._step(ctx, "split_text", work)
        return ctx.processed_text

    async def run(self, ctx: RunContext) -> dict[str, Any]:
        await self.fetch_record(ctx)
        await self.split_text(ctx)
        await self.transcribe(ctx)
        await self.align(ctx)
        await self.correct(ctx)
        doc = await self.build(ctx)
        await self.write_record(ctx)
        return doc
