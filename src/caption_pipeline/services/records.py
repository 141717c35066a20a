from __future__ import annotations

import base64
import json
from typing import Any

import httpx

from caption_pipeline.errors import RecordStoreError
from caption_pipeline.settings_store import SettingsStore
from caption_pipeline.text.document import background_defaults
from caption_pipeline.utils.log import logger

_FIELD_PREFIX = "_ragic_field_"


class RecordStore:
    """
    Ragic-backed song/voice records.

    Reads go through the read webhook; writes prefer the direct sheet API and
    fall back to the write webhook. Field ids come from the
    `ragic_<kind>_field_*` settings so sheet layouts can change without code.
    """

    def __init__(self, client: httpx.AsyncClient, settings: SettingsStore) -> None:
        self.client = client
        self.settings = settings

    def field_mapping(self, kind: str, direction: str) -> dict[str, str]:
        prefix = f"ragic_{kind}_field_"
        rows = self.settings.by_category(f"ragic_{kind}_{direction}")
        return {
            str(r["key"])[len(prefix) :]: str(r.get("value") or "")
            for r in rows
            if str(r.get("key") or "").startswith(prefix)
        }

    @staticmethod
    def _unwrap(raw: Any) -> dict[str, Any]:
        if isinstance(raw, list):
            raw = raw[0] if raw else {}
        if isinstance(raw, dict) and isinstance(raw.get("data"), (dict, list)):
            return RecordStore._unwrap(raw["data"])
        if not isinstance(raw, dict):
            raise RecordStoreError("record store returned an unexpected payload")
        return raw

    def _background(self, value: Any) -> dict[str, Any]:
        bg = background_defaults(self.settings)
        if isinstance(value, dict):
            return {**bg, **value}
        v = str(value or "").strip()
        if not v:
            return bg
        try:
            parsed = json.loads(v)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return {**bg, **parsed}
        if v.startswith("http"):
            return {**bg, "type": "image", "image": v}
        if v.startswith("#") or v.startswith("rgb"):
            return {**bg, "type": "color", "color": v}
        return bg

    def parse_record(self, raw: dict[str, Any], kind: str) -> dict[str, Any]:
        fields = self.field_mapping(kind, "input")

        def value(name: str) -> Any:
            fid = fields.get(name) or ""
            if not fid:
                return None
            if raw.get(fid) is not None:
                return raw[fid]
            short = fid.replace(_FIELD_PREFIX, "")
            if raw.get(short) is not None:
                return raw[short]
            return None

        if kind == "voice":
            merged = value("merged_audio_url")
            original = value("audio_url")
            return {
                "title": value("title") or "",
                "speaker": value("speaker") or "",
                "audioUrl": original or "",
                "mergedAudioUrl": merged or "",
                "finalAudioUrl": merged or original or "",
                "transcript": value("transcript") or "",
                "imageUrl": value("image_url") or "",
                "background": self._background(value("background")),
                "region": value("region") or "",
            }

        mirrored = value("r2_audio_url")
        original = value("audio_url")
        return {
            "title": value("title") or "",
            "artist": value("artist") or "",
            # mirrored copy first
            "audioUrl": mirrored or original or "",
            "originalAudioUrl": original or "",
            "lyrics": value("lyrics") or "",
            "images": value("images") or "",
            "background": self._background(value("background")),
            "region": value("region") or "",
        }

    async def fetch(self, reference: str, kind: str) -> dict[str, Any]:
        url = self.settings.get("webhook_n8n_ragic_read").strip()
        if not url:
            raise RecordStoreError("record store read webhook is not configured")
        logger.info("record_fetch", ref=reference, kind=kind)
        try:
            resp = await self.client.post(url, json={"code": reference, "mode": kind})
        except httpx.HTTPError as ex:
            raise RecordStoreError(f"record fetch failed: {type(ex).__name__}: {ex}") from ex
        if resp.status_code >= 300:
            raise RecordStoreError(f"record fetch failed: HTTP {resp.status_code}")
        try:
            raw = resp.json()
        except ValueError as ex:
            raise RecordStoreError("record fetch returned invalid JSON") from ex
        return self.parse_record(self._unwrap(raw), kind)

    def _output_fields(self, payload: dict[str, Any], kind: str) -> dict[str, Any]:
        fields = self.field_mapping(kind, "output")
        out: dict[str, Any] = {}
        doc = payload.get("output_document")
        if doc is not None and fields.get("output_json"):
            out[fields["output_json"]] = doc if isinstance(doc, str) else json.dumps(doc, ensure_ascii=False)
        for name, field_name in (("status", "status"), ("processing_time", "process_time"), ("error", "error_msg")):
            if payload.get(name) is not None and fields.get(field_name):
                out[fields[field_name]] = payload[name]
        return out

    async def _write_direct(self, reference: str, data: dict[str, Any], api_key: str, base_url: str) -> None:
        token = base64.b64encode(f"{api_key}:".encode()).decode("ascii")
        resp = await self.client.post(
            base_url,
            params={"where": f"code,eq,{reference}"},
            headers={"Authorization": f"Basic {token}"},
            json=data,
        )
        if resp.status_code >= 300:
            raise RecordStoreError(f"direct write failed: HTTP {resp.status_code} - {resp.text[:200]}")

    async def write(self, reference: str, payload: dict[str, Any], kind: str) -> bool:
        data = self._output_fields(payload, kind)
        api_key = self.settings.get("api_ragic_key").strip()
        base_url = self.settings.get("api_ragic_base_url").strip()
        webhook = self.settings.get("webhook_n8n_ragic_write").strip()

        if api_key and base_url:
            try:
                await self._write_direct(reference, data, api_key, base_url)
                logger.info("record_written", ref=reference, via="direct")
                return True
            except (httpx.HTTPError, RecordStoreError) as ex:
                if not webhook:
                    raise RecordStoreError(f"record write failed: {ex}") from ex
                logger.warning("record_direct_write_failed", ref=reference, error=str(ex))

        if not webhook:
            raise RecordStoreError("record store write target is not configured")
        try:
            resp = await self.client.post(webhook, json={"code": reference, "mode": kind, "data": data})
        except httpx.HTTPError as ex:
            raise RecordStoreError(f"record write failed: {type(ex).__name__}: {ex}") from ex
        if resp.status_code >= 300:
            raise RecordStoreError(f"record write webhook failed: HTTP {resp.status_code}")
        logger.info("record_written", ref=reference, via="webhook")
        return True
