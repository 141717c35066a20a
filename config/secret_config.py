from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SecretConfig(BaseSettings):
    """
    Sensitive config.

    This module is safe to commit: it contains *no* secrets, only loading logic.
    Real secret values should come from:
      - environment variables (preferred in production)
      - optional local `.env.secrets` file (developer convenience)

    Values here only seed empty entries of the runtime settings store on first
    boot; the settings store stays the source of truth afterwards.
    """

    model_config = SettingsConfigDict(
        env_file=".env.secrets",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # transcription providers
    assemblyai_key: SecretStr | None = Field(default=None, alias="ASSEMBLYAI_API_KEY")
    whisper147_key: SecretStr | None = Field(default=None, alias="WHISPER147_API_KEY")
    whisper_n1n_key: SecretStr | None = Field(default=None, alias="WHISPER_N1N_API_KEY")

    # alignment providers
    gemini147_key: SecretStr | None = Field(default=None, alias="GEMINI147_API_KEY")
    gemini_n1n_key: SecretStr | None = Field(default=None, alias="GEMINI_N1N_API_KEY")
    gemini_google_key: SecretStr | None = Field(default=None, alias="GOOGLE_GEMINI_API_KEY")

    # record store
    ragic_api_key: SecretStr | None = Field(default=None, alias="RAGIC_API_KEY")

    # notifications
    telegram_bot_token: SecretStr | None = Field(default=None, alias="TELEGRAM_BOT_TOKEN")

    def seed_values(self) -> dict[str, str]:
        """
        Map of settings-store key -> secret value for every secret that is set.
        """
        pairs = {
            "api_assemblyai_key": self.assemblyai_key,
            "api_whisper147_key": self.whisper147_key,
            "api_whisperN1N_key": self.whisper_n1n_key,
            "api_gemini147_key": self.gemini147_key,
            "api_geminiN1N_key": self.gemini_n1n_key,
            "api_geminiGoogle_key": self.gemini_google_key,
            "api_ragic_key": self.ragic_api_key,
            "telegram_bot_token": self.telegram_bot_token,
        }
        out: dict[str, str] = {}
        for key, secret in pairs.items():
            if secret is None:
                continue
            raw = secret.get_secret_value()
            if raw:
                out[key] = raw
        return out
