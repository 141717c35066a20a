from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, ClassVar

from caption_pipeline.errors import ValidationError
from caption_pipeline.jobs.context import RunContext
from caption_pipeline.jobs.steps import StepHandle, StepRunner, run_optional
from caption_pipeline.providers import failover
from caption_pipeline.providers.models import Capability, ProviderDescriptor
from caption_pipeline.providers.registry import ProviderRegistry
from caption_pipeline.services.alignment import AlignmentService
from caption_pipeline.services.records import RecordStore
from caption_pipeline.services.transcription import Transcript, TranscriptionService
from caption_pipeline.settings_store import SettingsStore
from caption_pipeline.text.document import build_document, format_processing_time


def merge_inputs(*sources: dict[str, Any] | None) -> dict[str, Any]:
    """
    Later sources win per field; None values never override.
    Call as merge_inputs(record, data, overrides).
    """
    out: dict[str, Any] = {}
    for src in sources:
        for k, v in (src or {}).items():
            if v is None:
                continue
            out[k] = v
    return out


def language_for_region(settings: SettingsStore, region: str | None) -> str:
    if not region:
        return "auto"
    for r in settings.get_json("regions_list", []) or []:
        if isinstance(r, dict) and str(r.get("id") or "").upper() == str(region).upper():
            return str(r.get("language") or "auto")
    return "auto"


@dataclass(slots=True)
class PipelineDeps:
    settings: SettingsStore
    registry: ProviderRegistry
    transcription: TranscriptionService
    alignment: AlignmentService
    records: RecordStore


class Pipeline:
    """
    Shared step implementations. Subclasses set `kind`, `targets` and the
    order in `run()`.
    """

    kind: ClassVar[str] = ""
    targets: ClassVar[dict[str, int]] = {}

    def __init__(self, deps: PipelineDeps, runner: StepRunner) -> None:
        self.deps = deps
        self.runner = runner

    async def run(self, ctx: RunContext) -> dict[str, Any]:
        raise NotImplementedError

    def _step(self, ctx: RunContext, name: str, work):
        return self.runner.run_step(ctx.job_id, name, self.targets[name], work)

    # --- input ---
    def validate(self, params: dict[str, Any]) -> None:
        raise NotImplementedError

    def audio_url(self, params: dict[str, Any]) -> str:
        return str(params.get("audioUrl") or "")

    def source_text(self, ctx: RunContext) -> str:
        raise NotImplementedError

    async def fetch_record(self, ctx: RunContext) -> dict[str, Any]:
        async def work(step: StepHandle) -> dict[str, Any]:
            record: dict[str, Any] = {}
            if ctx.record_ref:
                record = await self.deps.records.fetch(ctx.record_ref, self.kind)
                step.note(f"record {ctx.record_ref} loaded")
            else:
                step.note("no record reference; using direct input")
            params = merge_inputs(record, ctx.data, ctx.overrides)
            self.validate(params)
            return params

        ctx.params = await self._step(ctx, "fetch_record", work)
        return ctx.params

    # --- provider steps ---
    def _preferred(self, ctx: RunContext, input_key: str, setting_key: str) -> str | None:
        return str(ctx.params.get(input_key) or self.deps.settings.get(setting_key) or "") or None

    async def _failover(self, step: StepHandle, capability: Capability, preferred: str | None, op, label: str):
        providers = self.deps.registry.ordered_providers(capability, preferred)
        policy = self.deps.registry.retry_policy()

        def on_progress(p: ProviderDescriptor, attempt: int) -> None:
            step.note(f"{p.name} attempt {attempt}/{policy.max_attempts}")

        result = await failover.execute(providers, op, policy, on_progress=on_progress, label=label)
        step.retries = result.retries
        step.note(f"done via {result.provider_id}")
        return result.value

    async def transcribe(self, ctx: RunContext) -> Transcript:
        audio_url = self.audio_url(ctx.params)
        language = language_for_region(self.deps.settings, ctx.params.get("region"))
        preferred = self._preferred(ctx, "transcriptionProvider", "default_transcription_api")

        async def work(step: StepHandle) -> Transcript:
            async def op(p: ProviderDescriptor) -> Transcript:
                return await self.deps.transcription.transcribe(p, audio_url, language=language, report=step.note)

            return await self._failover(step, Capability.TRANSCRIPTION, preferred, op, "transcription")

        ctx.transcript = await self._step(ctx, "transcribe", work)
        return ctx.transcript

    async def align(self, ctx: RunContext) -> list[dict[str, Any]]:
        preferred = self._preferred(ctx, "matchingProvider", "default_matching_api")
        text = self.source_text(ctx)

        async def work(step: StepHandle) -> list[dict[str, Any]]:
            async def op(p: ProviderDescriptor) -> list[dict[str, Any]]:
                return await self.deps.alignment.align(p, self.kind, text, ctx.transcript)

            return await self._failover(step, Capability.ALIGNMENT, preferred, op, "alignment")

        ctx.lines = await self._step(ctx, "align", work)
        return ctx.lines

    async def correct(self, ctx: RunContext) -> None:
        if not self.deps.settings.get_bool("default_auto_correction", True):
            return
        preferred = self._preferred(ctx, "correctionProvider", "default_correction_api")
        text = self.source_text(ctx)

        async def work(step: StepHandle) -> list[dict[str, Any]]:
            async def op(p: ProviderDescriptor) -> list[dict[str, Any]]:
                return await self.deps.alignment.correct(p, ctx.lines, text)

            return await self._failover(step, Capability.ALIGNMENT, preferred, op, "correction")

        corrected = await run_optional(self.runner, ctx.job_id, "correct", self.targets["correct"], work)
        if corrected:
            ctx.lines = corrected

    async def build(self, ctx: RunContext) -> dict[str, Any]:
        async def work(step: StepHandle) -> dict[str, Any]:
            doc = build_document(
                ctx.lines,
                kind=self.kind,
                params=ctx.params,
                settings=self.deps.settings,
                record_ref=ctx.record_ref,
            )
            step.note(f"{len(ctx.lines)} lines")
            return doc

        ctx.document = await self._step(ctx, "build_document", work)
        return ctx.document

    async def write_record(self, ctx: RunContext) -> None:
        if not ctx.record_ref or not self.deps.settings.get_bool("default_auto_upload", True):
            return

        async def work(step: StepHandle) -> bool:
            elapsed = time.monotonic() - ctx.started_monotonic if ctx.started_monotonic else 0.0
            payload = {
                "output_document": ctx.document,
                "status": "completed",
                "processing_time": format_processing_time(elapsed),
            }
            ok = await self.deps.records.write(str(ctx.record_ref), payload, self.kind)
            step.note(f"record {ctx.record_ref} updated")
            return ok

        await self._step(ctx, "write_record", work)


def require(params: dict[str, Any], field: str) -> None:
    v = params.get(field)
    if v is None or (isinstance(v, str) and not v.strip()):
        raise ValidationError(field)
