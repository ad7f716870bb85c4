"""Notifications — fire-and-forget push around the NotificationChannel protocol.

Invariants:
    - notify_safely() never raises: a failed push is logged and the caller's state
      transition stands
    - Payloads carry ids and statuses only, never message content

Design Decisions:
    - LoggingNotificationChannel is the default channel: realtime delivery is an
      external service; deployments inject their own channel
"""

import logging
from uuid import UUID

from app.core.domain_types import NotificationEvent
from app.core.repository_protocols import NotificationChannel

logger = logging.getLogger(__name__)


class LoggingNotificationChannel:
    """Records events in the log stream. Default when no push service is wired."""

    async def notify(
        self, session_id: UUID, user_id: str, event_type: str, payload: dict,
    ) -> None:
        logger.info(
            f"Notification {event_type}",
            extra={
                "session_id": session_id, "user_id": user_id, "event_type": event_type,
            },
        )


async def notify_safely(
    channel: NotificationChannel,
    session_id: UUID,
    user_id: str,
    event: NotificationEvent,
    payload: dict | None = None,
) -> None:
    try:
        await channel.notify(session_id, user_id, event.value, payload or {})
    except Exception as e:
        logger.warning(
            f"Notification failed: {e}",
            extra={"session_id": session_id, "user_id": user_id, "event_type": event.value},
        )
