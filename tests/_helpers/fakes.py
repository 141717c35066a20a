from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from caption_pipeline.align.parser import parse_aligned_lines
from caption_pipeline.errors import ProviderTransportError, RecordStoreError
from caption_pipeline.jobs.orchestrator import JobOrchestrator
from caption_pipeline.jobs.store import JobStore
from caption_pipeline.pipelines.base import PipelineDeps
from caption_pipeline.providers.registry import ProviderRegistry
from caption_pipeline.services.transcription import Transcript, Word
from caption_pipeline.settings_store import SettingsStore

ALIGNED = 'const lyricsData=[{line:"hello",start:0.0},{line:"world",start:0.6},];'

VIDEO_INPUT = {
    "title": "Song",
    "artist": "Band",
    "audioUrl": "https://cdn.example.com/song.mp3",
    "lyrics": "hello\nworld",
}

VOICE_INPUT = {
    "title": "Note",
    "speaker": "Ann",
    "audioUrl": "https://cdn.example.com/note.mp3",
    "transcript": "Transcript: 今天天氣很好，我們一起去公園散步吧。<#0.5#>明天見！",
}


def make_settings(tmp_path: Path, **values: str) -> SettingsStore:
    store = SettingsStore(tmp_path / "settings.db")
    base = {
        "api_whisper147_key": "wk-147-test-key",
        "api_gemini147_key": "gk-147-test-key",
        "retry_delay_ms": "0",
        "default_auto_correction": "false",
        "default_auto_upload": "true",
    }
    base.update(values)
    store.update_many(base)
    return store


class FakeTranscription:
    """Fails `fail[provider_id]` times per provider, then succeeds."""

    def __init__(self, fail: dict[str, int] | None = None, gate: asyncio.Event | None = None) -> None:
        self.fail = dict(fail or {})
        self.gate = gate
        self.calls: list[tuple[str, str, str]] = []
        self.entered = asyncio.Event() if gate is not None else None

    async def transcribe(self, provider, audio_url: str, *, language: str = "auto", report=None) -> Transcript:
        self.calls.append((provider.id, audio_url, language))
        if self.gate is not None:
            self.entered.set()
            await self.gate.wait()
        if self.fail.get(provider.id, 0) > 0:
            self.fail[provider.id] -= 1
            raise ProviderTransportError(f"{provider.id}: HTTP 503", provider_id=provider.id, status=503)
        return Transcript(
            full_text="hello world",
            words=[Word("hello", 0, 500), Word("world", 600, 1100)],
            duration=1.1,
        )


class FakeAlignment:
    def __init__(self, responses: list[Any] | None = None, *, correct_error: Exception | None = None) -> None:
        self.responses = list(responses or [])
        self.correct_error = correct_error
        self.calls: list[tuple[str, str]] = []

    async def align(self, provider, kind: str, lyrics: str, transcript: Transcript) -> list[dict[str, Any]]:
        self.calls.append(("align", provider.id))
        resp = self.responses.pop(0) if self.responses else ALIGNED
        if isinstance(resp, Exception):
            raise resp
        return parse_aligned_lines(resp)

    async def correct(self, provider, lines: list[dict[str, Any]], original: str) -> list[dict[str, Any]]:
        self.calls.append(("correct", provider.id))
        if self.correct_error is not None:
            raise self.correct_error
        return [dict(ln, corrected=True) for ln in lines]


class FakeRecords:
    def __init__(self, record: dict[str, Any] | None = None, *, write_error: Exception | None = None) -> None:
        self.record = dict(record or {})
        self.write_error = write_error
        self.fetched: list[tuple[str, str]] = []
        self.written: list[tuple[str, dict[str, Any], str]] = []

    async def fetch(self, reference: str, kind: str) -> dict[str, Any]:
        self.fetched.append((reference, kind))
        if not self.record:
            raise RecordStoreError(f"record {reference} not found")
        return dict(self.record)

    async def write(self, reference: str, payload: dict[str, Any], kind: str) -> bool:
        if self.write_error is not None:
            raise self.write_error
        self.written.append((reference, payload, kind))
        return True


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []

    async def notify(self, event, summary: dict[str, Any]) -> bool:
        self.sent.append((getattr(event, "value", str(event)), summary))
        return True


def make_orchestrator(
    tmp_path: Path,
    settings: SettingsStore,
    *,
    transcription: Any = None,
    alignment: Any = None,
    records: Any = None,
    notifier: Any = None,
) -> JobOrchestrator:
    deps = PipelineDeps(
        settings=settings,
        registry=ProviderRegistry(settings),
        transcription=transcription or FakeTranscription(),
        alignment=alignment or FakeAlignment(),
        records=records or FakeRecords(),
    )
    return JobOrchestrator(JobStore(tmp_path / "jobs.db"), deps, notifier=notifier)
