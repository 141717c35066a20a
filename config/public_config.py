from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_app_root() -> Path:
    """
    Default application root.

      - Docker: /app
      - Local/dev: current working directory
    """
    env = os.environ.get("APP_ROOT")
    if env:
        return Path(env).resolve()
    if Path("/app").exists():
        return Path("/app").resolve()
    return Path.cwd().resolve()


class PublicConfig(BaseSettings):
    """
    Non-sensitive config with safe defaults.

    Loaded from (in order):
      - process env
      - optional `.env` file

    Runtime-editable options (provider order, retry counts, split rules, styles)
    live in the settings store instead; see `caption_pipeline.defaults`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- core paths ---
    app_root: Path = Field(default_factory=_default_app_root, alias="APP_ROOT")
    state_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "data").resolve(), alias="CAPTION_STATE_DIR"
    )
    log_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "logs").resolve(), alias="CAPTION_LOG_DIR"
    )
    jobs_db_name: str = Field(default="jobs.db", alias="JOBS_DB_NAME")
    settings_db_name: str = Field(default="settings.db", alias="SETTINGS_DB_NAME")

    # --- logging ---
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")

    # --- outbound calls ---
    http_timeout_sec: float = Field(default=120.0, alias="HTTP_TIMEOUT_SEC")
    # Submit-then-poll transcription: 120 x 5s ~= 10 minutes.
    transcribe_poll_interval_sec: float = Field(default=5.0, alias="TRANSCRIBE_POLL_INTERVAL_SEC")
    transcribe_poll_max: int = Field(default=120, alias="TRANSCRIBE_POLL_MAX")

    # --- server ---
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")
    # Used for links in notifications (optional).
    public_base_url: str = Field(default="", alias="PUBLIC_BASE_URL")

    def jobs_db_path(self) -> Path:
        return Path(self.state_dir) / self.jobs_db_name

    def settings_db_path(self) -> Path:
        return Path(self.state_dir) / self.settings_db_name
