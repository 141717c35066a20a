from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import httpx

from caption_pipeline.align.parser import lines_to_literal, parse_aligned_lines
from caption_pipeline.errors import ParseError, ProviderError, ProviderTransportError, raise_for_provider_status
from caption_pipeline.providers.models import ProviderDescriptor, ProviderKind
from caption_pipeline.services.http import json_body
from caption_pipeline.services.transcription import Transcript
from caption_pipeline.settings_store import SettingsStore
from caption_pipeline.utils.log import logger


@dataclass(frozen=True, slots=True)
class Completion:
    text: str
    finish_reason: str | None = None


class AlignmentService:
    """
    LLM completion plus the two prompts the pipelines need: aligning lyrics
    to word timestamps and correcting an existing alignment.
    """

    def __init__(self, client: httpx.AsyncClient, settings: SettingsStore) -> None:
        self.client = client
        self.settings = settings

    # --- prompts ---
    def align_prompt(self, kind: str, lyrics: str, transcript: Transcript) -> str:
        key = "prompt_voice" if str(kind) == "voice" else "prompt_video"
        template = self.settings.get(key)
        if not template:
            raise ProviderError(f"prompt template {key} is empty")
        words = json.dumps(transcript.words_payload(), ensure_ascii=False, indent=2)
        return template.replace("[USER_LYRICS]", lyrics).replace("[ASSEMBLY_JSON]", words)

    def correction_prompt(self, lines: list[dict[str, Any]], original: str) -> str:
        template = self.settings.get("prompt_correction")
        if not template:
            raise ProviderError("prompt template prompt_correction is empty")
        return template.replace("[CURRENT_LYRICS]", lines_to_literal(lines)).replace("[ORIGINAL_LYRICS]", original)

    # --- operations ---
    async def align(
        self, provider: ProviderDescriptor, kind: str, lyrics: str, transcript: Transcript
    ) -> list[dict[str, Any]]:
        completion = await self.complete(provider, self.align_prompt(kind, lyrics, transcript))
        lines = parse_aligned_lines(completion.text, finish_reason=completion.finish_reason)
        logger.info("lines_aligned", provider=provider.id, lines=len(lines))
        return lines

    async def correct(
        self, provider: ProviderDescriptor, lines: list[dict[str, Any]], original: str
    ) -> list[dict[str, Any]]:
        completion = await self.complete(provider, self.correction_prompt(lines, original))
        corrected = parse_aligned_lines(completion.text, finish_reason=completion.finish_reason)
        logger.info("lines_corrected", provider=provider.id, before=len(lines), after=len(corrected))
        return corrected

    async def complete(self, provider: ProviderDescriptor, prompt: str) -> Completion:
        if provider.kind == ProviderKind.OPENAI_CHAT:
            return await self._openai_chat(provider, prompt)
        if provider.kind == ProviderKind.GOOGLE_GEMINI:
            return await self._google_gemini(provider, prompt)
        raise ProviderError(
            f"{provider.id}: provider kind {provider.kind.value} cannot complete prompts", provider_id=provider.id
        )

    async def _post(self, provider: ProviderDescriptor, url: str, **kwargs: Any) -> Any:
        try:
            resp = await self.client.post(url, **kwargs)
        except httpx.HTTPError as ex:
            raise ProviderTransportError(f"{provider.id}: {type(ex).__name__}: {ex}", provider_id=provider.id) from ex
        raise_for_provider_status(resp.status_code, resp.text, provider_id=provider.id, what=provider.name)
        return json_body(resp, provider_id=provider.id)

    async def _openai_chat(self, provider: ProviderDescriptor, prompt: str) -> Completion:
        body: dict[str, Any] = {
            "model": provider.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if provider.max_tokens:
            body["max_tokens"] = provider.max_tokens
        if provider.temperature is not None:
            body["temperature"] = provider.temperature

        data = await self._post(
            provider,
            provider.endpoint,
            headers={"Authorization": f"Bearer {provider.credential}"},
            json=body,
        )
        try:
            choice = data["choices"][0]
            text = choice["message"]["content"]
        except (KeyError, IndexError, TypeError) as ex:
            raise ParseError(f"{provider.id}: completion has no choices", provider_id=provider.id) from ex
        return Completion(text=str(text or ""), finish_reason=choice.get("finish_reason"))

    async def _google_gemini(self, provider: ProviderDescriptor, prompt: str) -> Completion:
        url = f"{provider.endpoint.rstrip('/')}/models/{provider.model}:generateContent"
        body: dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        gen: dict[str, Any] = {}
        if provider.max_tokens:
            gen["maxOutputTokens"] = provider.max_tokens
        if provider.temperature is not None:
            gen["temperature"] = provider.temperature
        if gen:
            body["generationConfig"] = gen

        data = await self._post(provider, url, params={"key": provider.credential}, json=body)
        try:
            cand = data["candidates"][0]
            parts = cand.get("content", {}).get("parts") or []
        except (KeyError, IndexError, TypeError, AttributeError) as ex:
            raise ParseError(f"{provider.id}: completion has no candidates", provider_id=provider.id) from ex
        text = "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))
        return Completion(text=text, finish_reason=cand.get("finishReason"))
