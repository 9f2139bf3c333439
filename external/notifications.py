"""
External - Push Notification Client.

Sends push notifications to the devices of an account.
Notifications are fire-and-forget: failures are logged and
reported through the return value, never raised.
"""

import logging
from typing import Dict, Optional

import aiohttp

from core.config import NotificationConfig


logger = logging.getLogger(__name__)


EVENT_ARCHIVE_PROCESSED = "archive_processed"

MESSAGES: Dict[str, str] = {
    EVENT_ARCHIVE_PROCESSED: "Your archive has been analyzed and your insights are ready.",
}


class NotificationClient:
    """Notification service client, enabled only when configured."""

    def __init__(self, config: Optional[NotificationConfig] = None):
        self._config = config or NotificationConfig.from_env()
        self._session: Optional[aiohttp.ClientSession] = None
        self._enabled = bool(self._config.enabled and self._config.app_id and self._config.api_key)

        if self._enabled:
            logger.info("NotificationClient enabled")
        else:
            logger.warning("NotificationClient NOT configured - check NOTIFICATION_APP_ID and NOTIFICATION_API_KEY")

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
            )
        return self._session

    async def close(self) -> None:
        """Close the client."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def notify(self, account_number: str, event_kind: str) -> bool:
        """
        Notify the devices of an account about an event.

        Returns True if sent successfully.
        """
        if not self._enabled:
            return False

        payload = {
            "app_id": self._config.app_id,
            "include_external_user_ids": [account_number],
            "contents": {"en": MESSAGES.get(event_kind, event_kind)},
            "data": {"event": event_kind},
        }
        headers = {"Authorization": f"Basic {self._config.api_key}"}

        try:
            session = await self._get_session()
            url = f"{self._config.base_url.rstrip('/')}/notifications"
            async with session.post(url, json=payload, headers=headers) as response:
                if response.status < 300:
                    logger.info(f"Notified {account_number} about {event_kind}")
                    return True
                body = await response.text()
                logger.error(f"Notification API error: {response.status} - {body}")
                return False

        except Exception as e:
            logger.error(f"Error sending notification to {account_number}: {e}")
            return False


__all__ = ["NotificationClient", "EVENT_ARCHIVE_PROCESSED"]
