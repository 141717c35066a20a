from __future__ import annotations

import asyncio
import mimetypes
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import httpx

from caption_pipeline.errors import ParseError, ProviderError, ProviderTransportError, raise_for_provider_status
from caption_pipeline.providers.models import ProviderDescriptor, ProviderKind
from caption_pipeline.services.http import json_body
from caption_pipeline.utils.log import logger


@dataclass(frozen=True, slots=True)
class Word:
    text: str
    start_ms: int
    end_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "start": self.start_ms / 1000.0, "end": self.end_ms / 1000.0}


@dataclass(frozen=True, slots=True)
class Transcript:
    full_text: str
    words: list[Word] = field(default_factory=list)
    duration: float | None = None
    language: str | None = None

    def words_payload(self) -> list[dict[str, Any]]:
        """Word timestamps in seconds, as handed to the alignment prompt."""
        return [w.to_dict() for w in self.words]


def _audio_filename(url: str) -> tuple[str, str]:
    name = urlparse(url).path.rsplit("/", 1)[-1] or "audio.mp3"
    if "." not in name:
        name = f"{name}.mp3"
    ctype = mimetypes.guess_type(name)[0] or "audio/mpeg"
    return name, ctype


class TranscriptionService:
    """
    Speech-to-text over the provider dialects the registry knows about.

    `openai-whisper` downloads the audio and uploads it as multipart form;
    `assemblyai` submits the URL and polls until the transcript is ready.
    """

    def __init__(self, client: httpx.AsyncClient, *, poll_interval_s: float = 5.0, poll_max: int = 120) -> None:
        self.client = client
        self.poll_interval_s = max(0.0, float(poll_interval_s))
        self.poll_max = max(1, int(poll_max))

    async def transcribe(
        self,
        provider: ProviderDescriptor,
        audio_url: str,
        *,
        language: str = "auto",
        report: Callable[[str], None] | None = None,
    ) -> Transcript:
        if provider.kind == ProviderKind.OPENAI_WHISPER:
            return await self._whisper(provider, audio_url, language=language, report=report)
        if provider.kind == ProviderKind.ASSEMBLYAI:
            return await self._assemblyai(provider, audio_url, language=language, report=report)
        raise ProviderError(
            f"{provider.id}: provider kind {provider.kind.value} cannot transcribe", provider_id=provider.id
        )

    async def _request(self, provider: ProviderDescriptor, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as ex:
            raise ProviderTransportError(f"{provider.id}: {type(ex).__name__}: {ex}", provider_id=provider.id) from ex

    async def _whisper(
        self,
        provider: ProviderDescriptor,
        audio_url: str,
        *,
        language: str,
        report: Callable[[str], None] | None,
    ) -> Transcript:
        if report:
            report("downloading audio")
        resp = await self._request(provider, "GET", audio_url)
        raise_for_provider_status(resp.status_code, resp.text, provider_id=provider.id, what="audio download")
        audio = resp.content
        logger.info("audio_downloaded", provider=provider.id, bytes=len(audio))

        name, ctype = _audio_filename(audio_url)
        data: dict[str, Any] = {
            "model": provider.model or "whisper-1",
            "response_format": "verbose_json",
            "timestamp_granularities[]": "word",
        }
        if language and language != "auto":
            data["language"] = language

        if report:
            report(f"uploading to {provider.name}")
        resp = await self._request(
            provider,
            "POST",
            provider.endpoint,
            headers={"Authorization": f"Bearer {provider.credential}"},
            data=data,
            files={"file": (name, audio, ctype)},
        )
        raise_for_provider_status(resp.status_code, resp.text, provider_id=provider.id, what=provider.name)
        body = json_body(resp, provider_id=provider.id)
        if not isinstance(body, dict):
            raise ParseError(f"{provider.id}: unexpected transcription payload", provider_id=provider.id)

        words = [
            Word(
                text=str(w.get("word") or w.get("text") or "").strip(),
                start_ms=int(round(float(w.get("start") or 0) * 1000)),
                end_ms=int(round(float(w.get("end") or 0) * 1000)),
            )
            for w in (body.get("words") or [])
            if isinstance(w, dict)
        ]
        dur = body.get("duration")
        return Transcript(
            full_text=str(body.get("text") or ""),
            words=words,
            duration=float(dur) if dur is not None else None,
            language=body.get("language") or (language if language != "auto" else None),
        )

    async def _assemblyai(
        self,
        provider: ProviderDescriptor,
        audio_url: str,
        *,
        language: str,
        report: Callable[[str], None] | None,
    ) -> Transcript:
        base = provider.endpoint.rstrip("/")
        headers = {"Authorization": provider.credential}
        payload: dict[str, Any] = {"audio_url": audio_url}
        if language and language != "auto":
            payload["language_code"] = language
        else:
            payload["language_detection"] = True

        resp = await self._request(provider, "POST", f"{base}/transcript", headers=headers, json=payload)
        raise_for_provider_status(resp.status_code, resp.text, provider_id=provider.id, what="AssemblyAI submit")
        submitted = json_body(resp, provider_id=provider.id)
        tid = str((submitted or {}).get("id") or "")
        if not tid:
            raise ParseError(f"{provider.id}: submit response has no transcript id", provider_id=provider.id)
        logger.info("transcript_submitted", provider=provider.id, transcript_id=tid)

        for i in range(1, self.poll_max + 1):
            resp = await self._request(provider, "GET", f"{base}/transcript/{tid}", headers=headers)
            raise_for_provider_status(resp.status_code, resp.text, provider_id=provider.id, what="AssemblyAI poll")
            body = json_body(resp, provider_id=provider.id) or {}
            status = str(body.get("status") or "")
            if status == "completed":
                return self._assemblyai_transcript(body)
            if status == "error":
                raise ProviderError(
                    f"{provider.id}: transcription failed: {body.get('error') or 'unknown error'}",
                    provider_id=provider.id,
                )
            if report:
                report(f"waiting for transcript ({i}/{self.poll_max}, {status or 'queued'})")
            await asyncio.sleep(self.poll_interval_s)

        raise ProviderTransportError(
            f"{provider.id}: transcript not ready after {self.poll_max} polls", provider_id=provider.id
        )

    @staticmethod
    def _assemblyai_transcript(body: dict[str, Any]) -> Transcript:
        words = [
            Word(text=str(w.get("text") or ""), start_ms=int(w.get("start") or 0), end_ms=int(w.get("end") or 0))
            for w in (body.get("words") or [])
            if isinstance(w, dict)
        ]
        dur = body.get("audio_duration")
        return Transcript(
            full_text=str(body.get("text") or ""),
            words=words,
            duration=float(dur) if dur is not None else None,
            language=body.get("language_code"),
        )
