from __future__ import annotations

from typing import Any

import httpx

from caption_pipeline.notify.base import EVENT_SETTINGS, Notification, NotifyEvent, render_template
from caption_pipeline.settings_store import SettingsStore
from caption_pipeline.utils.log import logger

TELEGRAM_API = "https://api.telegram.org"


class Notifier:
    """
    Best-effort job notifications over the n8n-style webhook and/or Telegram.

    Every channel is gated by settings; delivery failures are logged and
    swallowed so a notification can never change a job's outcome.
    """

    def __init__(self, client: httpx.AsyncClient, settings: SettingsStore, *, public_base_url: str = "") -> None:
        self.client = client
        self.settings = settings
        self.public_base_url = str(public_base_url or "").rstrip("/")

    def _build(self, event: NotifyEvent, summary: dict[str, Any]) -> Notification:
        _, template_key = EVENT_SETTINGS[event]
        message = render_template(self.settings.get(template_key) or "{name}: " + event.value, summary)
        job_id = str(summary.get("id") or "") or None
        url = f"{self.public_base_url}/api/jobs/{job_id}" if self.public_base_url and job_id else None
        return Notification(
            event=event,
            title=f"{summary.get('name') or 'job'}: {event.value}",
            message=message,
            job_id=job_id,
            url=url,
        )

    async def _send_webhook(self, n: Notification, summary: dict[str, Any]) -> bool:
        url = self.settings.get("webhook_n8n_notification").strip()
        if not url:
            return False
        resp = await self.client.post(url, json=n.webhook_payload(summary))
        return 200 <= resp.status_code < 300

    async def _send_telegram(self, n: Notification) -> bool:
        token = self.settings.get("telegram_bot_token").strip()
        chat_id = self.settings.get("telegram_chat_id").strip()
        if not token or not chat_id:
            return False
        resp = await self.client.post(
            f"{TELEGRAM_API}/bot{token}/sendMessage",
            json={"chat_id": chat_id, "text": n.message, "parse_mode": "HTML", "disable_web_page_preview": True},
        )
        return 200 <= resp.status_code < 300

    async def notify(self, event: NotifyEvent | str, summary: dict[str, Any]) -> bool:
        """
        Returns True if at least one channel accepted the message.
        Never raises for delivery failures.
        """
        try:
            ev = NotifyEvent(event.value if isinstance(event, NotifyEvent) else str(event))
            toggle_key, _ = EVENT_SETTINGS[ev]
            if not self.settings.get_bool(toggle_key, False):
                return False
            n = self._build(ev, summary)
        except Exception as ex:
            logger.warning("notify_build_failed", notify_event=str(event), error=str(ex))
            return False

        results: dict[str, bool] = {}
        if self.settings.get_bool("notify_via_n8n", False):
            try:
                results["webhook"] = await self._send_webhook(n, summary)
            except Exception as ex:
                results["webhook"] = False
                logger.warning("notify_channel_failed", channel="webhook", notify_event=ev.value, error=str(ex))
        if self.settings.get_bool("notify_via_telegram_direct", False):
            try:
                results["telegram"] = await self._send_telegram(n)
            except Exception as ex:
                results["telegram"] = False
                logger.warning("notify_channel_failed", channel="telegram", notify_event=ev.value, error=str(ex))

        ok = any(results.values())
        logger.info("job_notify", ok=ok, notify_event=ev.value, job_id=n.job_id, channels=results)
        return ok
