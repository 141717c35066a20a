from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class NotifyEvent(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PAUSE = "pause"


# event -> (toggle setting, template setting)
EVENT_SETTINGS: dict[NotifyEvent, tuple[str, str]] = {
    NotifyEvent.SUCCESS: ("notify_on_success", "notify_template_success"),
    NotifyEvent.FAILURE: ("notify_on_failure", "notify_template_failure"),
    NotifyEvent.PAUSE: ("notify_on_pause", "notify_template_pause"),
}


@dataclass(frozen=True, slots=True)
class Notification:
    event: NotifyEvent
    title: str
    message: str
    job_id: str | None = None
    url: str | None = None

    def webhook_payload(self, summary: dict[str, Any]) -> dict[str, Any]:
        return {
            "event": self.event.value,
            "title": self.title,
            "message": self.message,
            "job_id": self.job_id,
            "url": self.url,
            "job": summary,
        }


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return "-"


def render_template(template: str, summary: dict[str, Any]) -> str:
    """`{name}` style placeholders; unknown ones render as `-`."""
    values = _Blank({k: ("-" if v is None or v == "" else v) for k, v in summary.items()})
    try:
        return str(template).format_map(values)
    except (ValueError, IndexError):
        return str(template)
