"""
Pipeline - Notification Stage.

Tells the account owner that an archive finished processing.
Fire-and-forget: a failed notification is logged, never raised.
"""

import logging
from typing import Any, Dict

from pipeline.stage import Stage
from pipeline.tasks import TASK_NOTIFY, NotificationPayload


logger = logging.getLogger(__name__)


class NotificationStage(Stage):
    TASK = TASK_NOTIFY
    PAYLOAD = NotificationPayload

    async def run(self, payload: NotificationPayload) -> Dict[str, Any]:
        sent = await self.context.notifications.notify(payload.account_number, payload.event_kind)
        if not sent:
            logger.warning(f"Notification {payload.event_kind} not delivered to {payload.account_number}")
        return {"sent": sent}


__all__ = ["NotificationStage"]
