"""
Notification Service - best-effort owner e-mail via the Resend HTTP API.

Failures are logged and swallowed; a notification must never fail the
conversation pipeline that triggered it.
"""

from typing import Optional

import httpx

from workmate.config import Settings, settings as default_settings
from workmate.structured_logging import Subsystem, get_subsystem_logger

log = get_subsystem_logger(Subsystem.NOTIFY)

RESEND_URL = "https://api.resend.com/emails"


class Notifier:
    """Interface for the notification collaborator."""

    async def send_email(self, to: str, subject: str, text: str) -> bool:
        raise NotImplementedError


class ResendNotifier(Notifier):

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or default_settings
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.config.resend_api_key)

    async def send_email(self, to: str, subject: str, text: str) -> bool:
        """Returns True when the provider accepted the e-mail."""
        if not self.enabled:
            log.debug("Notifications disabled (no RESEND_API_KEY)", {"to": to})
            return False

        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                resp = await client.post(
                    RESEND_URL,
                    headers={"Authorization": f"Bearer {self.config.resend_api_key}"},
                    json={
                        "from": self.config.notification_from,
                        "to": [to],
                        "subject": subject,
                        "text": text,
                    },
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            log.warning("Notification failed", {"to": to, "subject": subject, "error": str(e)})
            return False

        log.info("Notification sent", {"to": to, "subject": subject})
        return True
