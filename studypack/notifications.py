from typing import Callable, Dict, Optional

import structlog
from sqlalchemy.orm import sessionmaker

from studypack import crud
from studypack.clock import Clock, utcnow
from studypack.database import session_scope
from studypack.errors import NotFoundError
from studypack.models import User
from studypack.schemas import DeliveryResult, NotificationPayload

logger = structlog.get_logger(__name__)

# channel(user, payload) delivers or raises
Channel = Callable[[User, NotificationPayload], None]


def log_channel(user: User, payload: NotificationPayload) -> None:
    logger.info(
        "notification_delivered",
        user_id=user.id,
        email=user.email,
        notification_type=payload.type,
        title=payload.title,
    )


class DatabaseNotificationSink:
    """
    Records each payload in the notifications table, then tries every channel
    the user has not opted out of (preference "<channel>_notifications": false).

    The first channel that succeeds marks the record sent. Channel errors are
    logged and turned into a failed delivery, never raised.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        channels: Optional[Dict[str, Channel]] = None,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.channels = channels if channels is not None else {"log": log_channel}
        self.clock = clock

    def notify(self, user_id: int, payload: NotificationPayload) -> DeliveryResult:
        with session_scope(self.session_factory) as db:
            user = crud.get_user(db, user_id)
            if not user:
                raise NotFoundError("user", user_id)
            preferences = user.preferences or {}

            notification = crud.create_notification(db, user_id, payload)

            if preferences.get("notifications") is False:
                crud.mark_notification(db, notification, "failed", None, None)
                return DeliveryResult(delivered=False, notification_id=notification.id, error="opted out")

            errors = []
            for name, channel in self.channels.items():
                if preferences.get(f"{name}_notifications") is False:
                    continue
                try:
                    channel(user, payload)
                except Exception as exc:
                    logger.warning("notification_channel_failed", user_id=user_id, channel=name, error=str(exc))
                    errors.append(f"{name}: {exc}")
                    continue
                crud.mark_notification(db, notification, "sent", name, self.clock())
                return DeliveryResult(delivered=True, channel=name, notification_id=notification.id)

            crud.mark_notification(db, notification, "failed", None, None)
            return DeliveryResult(
                delivered=False,
                notification_id=notification.id,
                error="; ".join(errors) or "no channel available",
            )
