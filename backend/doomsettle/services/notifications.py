"""Winner notification delivery."""

import logging
from typing import Protocol

import httpx

from doomsettle.config import NotificationConfig
from doomsettle.services.exceptions import TransientSettlementError

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def deliver(self, user_id: str, title: str, body: str, data: dict) -> None: ...


class WebhookNotifier:
    """
    POSTs notifications to a webhook with HTTPX.

    With no webhook configured the notification is only logged.
    """

    def __init__(self, config: NotificationConfig):
        self.config = config

    async def deliver(self, user_id: str, title: str, body: str, data: dict) -> None:
        if not self.config.enabled:
            logger.debug(f"Notifications disabled, dropping message for {user_id}")
            return

        if not self.config.webhook_url:
            logger.info(f"Notify {user_id}: {title} {body}")
            return

        payload = {"user_id": user_id, "title": title, "body": body, "data": data}
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                response = await client.post(self.config.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code >= 500:
                raise TransientSettlementError(f"Notification webhook error: {e}") from e
            logger.error(f"Notification rejected by webhook ({e.response.status_code}) for {user_id}")
            return
        except httpx.TransportError as e:
            raise TransientSettlementError(f"Notification webhook unreachable: {e}") from e

        logger.debug(f"Delivered notification to {user_id}")
