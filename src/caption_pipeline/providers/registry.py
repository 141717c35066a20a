from __future__ import annotations

from typing import Protocol

from caption_pipeline.providers.models import (
    Capability,
    ProviderDescriptor,
    ProviderKind,
    RetryPolicy,
)

# id -> (display name, capability, dialect)
CATALOG: dict[str, tuple[str, Capability, ProviderKind]] = {
    "whisper147": ("147 Whisper", Capability.TRANSCRIPTION, ProviderKind.OPENAI_WHISPER),
    "whisperN1N": ("N1N Whisper", Capability.TRANSCRIPTION, ProviderKind.OPENAI_WHISPER),
    "assemblyai": ("AssemblyAI", Capability.TRANSCRIPTION, ProviderKind.ASSEMBLYAI),
    "gemini147": ("147 Gemini", Capability.ALIGNMENT, ProviderKind.OPENAI_CHAT),
    "geminiN1N": ("N1N Gemini", Capability.ALIGNMENT, ProviderKind.OPENAI_CHAT),
    "geminiGoogle": ("Google Gemini", Capability.ALIGNMENT, ProviderKind.GOOGLE_GEMINI),
}

ORDER_SETTING: dict[Capability, str] = {
    Capability.TRANSCRIPTION: "retry_transcription_order",
    Capability.ALIGNMENT: "retry_ai_order",
}

DEFAULT_ORDER: dict[Capability, list[str]] = {
    Capability.TRANSCRIPTION: ["whisper147", "whisperN1N", "assemblyai"],
    Capability.ALIGNMENT: ["gemini147", "geminiN1N", "geminiGoogle"],
}


class SettingsReader(Protocol):
    def get(self, key: str, default: str = "") -> str: ...

    def get_int(self, key: str, default: int = 0) -> int: ...

    def get_float(self, key: str, default: float | None = None) -> float | None: ...


def _cap(capability: Capability | str) -> Capability:
    return capability if isinstance(capability, Capability) else Capability(str(capability))


class ProviderRegistry:
    """
    Read-only view of the configured providers. Every call re-reads the
    settings collaborator so edits apply to the next lookup.
    """

    def __init__(self, settings: SettingsReader) -> None:
        self.settings = settings

    def _descriptor(self, pid: str) -> ProviderDescriptor:
        name, cap, kind = CATALOG[pid]
        s = self.settings
        max_tokens = s.get_int(f"api_{pid}_max_tokens", 0)
        return ProviderDescriptor(
            id=pid,
            name=name,
            capability=cap,
            kind=kind,
            endpoint=s.get(f"api_{pid}_endpoint", "").strip(),
            credential=s.get(f"api_{pid}_key", "").strip(),
            model=s.get(f"api_{pid}_model", "").strip(),
            max_tokens=max_tokens if max_tokens > 0 else None,
            temperature=s.get_float(f"api_{pid}_temperature", None),
        )

    def get_providers(self, capability: Capability | str) -> dict[str, ProviderDescriptor]:
        cap = _cap(capability)
        return {pid: self._descriptor(pid) for pid, (_, c, _) in CATALOG.items() if c == cap}

    def get_fallback_order(self, capability: Capability | str, preferred_id: str | None = None) -> list[str]:
        cap = _cap(capability)
        known = {pid for pid, (_, c, _) in CATALOG.items() if c == cap}
        raw = self.settings.get(ORDER_SETTING[cap], "").strip()
        ids = [p.strip() for p in raw.split(",") if p.strip()] if raw else list(DEFAULT_ORDER[cap])

        order: list[str] = []
        for pid in ids:
            if pid in known and pid not in order:
                order.append(pid)

        if preferred_id and preferred_id in known:
            if preferred_id in order:
                order.remove(preferred_id)
            order.insert(0, preferred_id)
        return order

    def ordered_providers(
        self, capability: Capability | str, preferred_id: str | None = None
    ) -> list[ProviderDescriptor]:
        return [self._descriptor(pid) for pid in self.get_fallback_order(capability, preferred_id)]

    def retry_policy(self) -> RetryPolicy:
        attempts = self.settings.get_int("retry_max_attempts", 3)
        delay = self.settings.get_int("retry_delay_ms", 2000)
        return RetryPolicy(max_attempts=max(1, attempts), delay_ms=max(0, delay))
