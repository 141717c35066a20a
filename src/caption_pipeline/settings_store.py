from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from sqlitedict import SqliteDict  # type: ignore

from caption_pipeline.defaults import DEFAULT_SETTINGS
from caption_pipeline.utils.log import logger, register_secret

_TRUE = {"1", "true", "yes", "on"}


def _is_secret_key(key: str) -> bool:
    k = key.lower()
    return k.endswith("_key") or k.endswith("_token")


class SettingsStore:
    """
    Runtime-editable key/value settings (provider credentials, retry policy,
    split rules, prompts, notification toggles).

    Values are always stored as strings; typed getters coerce on read.
    On construction, missing defaults are inserted and empty credential entries
    are seeded from `SecretConfig` (env / .env.secrets). Existing values are
    never overwritten.
    """

    def __init__(self, db_path: Path, *, seed: dict[str, str] | None = None) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_defaults(seed or {})

    def _db(self) -> SqliteDict:
        return SqliteDict(str(self.db_path), tablename="settings", autocommit=True)

    def _init_defaults(self, seed: dict[str, str]) -> None:
        added = 0
        seeded = 0
        with self._lock, self._db() as db:
            for row in DEFAULT_SETTINGS:
                if row["key"] not in db:
                    db[row["key"]] = dict(row)
                    added += 1
            for key, value in seed.items():
                rec = db.get(key)
                if rec is None:
                    continue
                if not str(rec.get("value") or ""):
                    rec = dict(rec)
                    rec["value"] = str(value)
                    db[key] = rec
                    seeded += 1
            for key in list(db.keys()):
                if _is_secret_key(key):
                    register_secret(str((db.get(key) or {}).get("value") or ""))
        if added or seeded:
            logger.info("settings_initialized", added=added, seeded=seeded, db=str(self.db_path))

    # --- reads ---
    def get(self, key: str, default: str = "") -> str:
        with self._lock, self._db() as db:
            rec = db.get(str(key))
        if not isinstance(rec, dict):
            return default
        val = rec.get("value")
        return default if val is None else str(val)

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self.get(key, "").strip().lower()
        if not raw:
            return default
        return raw in _TRUE

    def get_int(self, key: str, default: int = 0) -> int:
        raw = self.get(key, "").strip()
        try:
            return int(float(raw))
        except (ValueError, OverflowError):
            return default

    def get_float(self, key: str, default: float | None = None) -> float | None:
        raw = self.get(key, "").strip()
        try:
            return float(raw)
        except ValueError:
            return default

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key, "").strip()
        if not raw:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("settings_bad_json", key=key)
            return default

    def all(self) -> dict[str, str]:
        with self._lock, self._db() as db:
            items = list(db.items())
        return {k: str((v or {}).get("value") or "") for k, v in items}

    def by_category(self, category: str) -> list[dict[str, Any]]:
        with self._lock, self._db() as db:
            items = list(db.values())
        rows = [dict(r) for r in items if isinstance(r, dict) and r.get("category") == category]
        rows.sort(key=lambda r: int(r.get("sort_order") or 0))
        return rows

    def categories(self) -> list[str]:
        with self._lock, self._db() as db:
            items = list(db.values())
        return sorted({str(r.get("category") or "") for r in items if isinstance(r, dict)})

    # --- writes ---
    def update(self, key: str, value: Any) -> None:
        key = str(key)
        with self._lock, self._db() as db:
            rec = db.get(key)
            rec = dict(rec) if isinstance(rec, dict) else {
                "key": key,
                "category": "custom",
                "label": key,
                "type": "text",
                "options": "",
                "sort_order": 0,
            }
            rec["value"] = "" if value is None else str(value)
            db[key] = rec
        if _is_secret_key(key):
            register_secret(rec["value"])
        logger.info("settings_updated", key=key)

    def update_many(self, values: dict[str, Any]) -> int:
        for k, v in values.items():
            self.update(k, v)
        return len(values)
