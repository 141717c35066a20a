from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Capability(str, Enum):
    TRANSCRIPTION = "transcription"
    ALIGNMENT = "alignment"


class ProviderKind(str, Enum):
    OPENAI_WHISPER = "openai-whisper"
    ASSEMBLYAI = "assemblyai"
    OPENAI_CHAT = "openai-chat"
    GOOGLE_GEMINI = "google-gemini"


@dataclass(frozen=True, slots=True)
class ProviderDescriptor:
    id: str
    name: str
    capability: Capability
    kind: ProviderKind
    endpoint: str = ""
    credential: str = ""
    model: str = ""
    max_tokens: int | None = None
    temperature: float | None = None

    @property
    def usable(self) -> bool:
        return bool(self.credential) and bool(self.endpoint)

    def public_dict(self) -> dict[str, Any]:
        """Descriptor without the credential (safe for API responses/logs)."""
        return {
            "id": self.id,
            "name": self.name,
            "capability": self.capability.value,
            "kind": self.kind.value,
            "endpoint": self.endpoint,
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "usable": self.usable,
        }


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    delay_ms: int = 2000


@dataclass(frozen=True, slots=True)
class FailoverResult:
    value: Any
    provider_id: str
    attempts: int

    @property
    def retries(self) -> int:
        return max(0, self.attempts - 1)
