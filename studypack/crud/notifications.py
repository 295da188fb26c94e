from sqlalchemy.orm import Session
from studypack.models import Notification
from studypack.schemas import NotificationPayload
from datetime import datetime
from typing import List, Optional

def create_notification(db: Session, user_id: int, payload: NotificationPayload) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=payload.type,
        title=payload.title,
        message=payload.message,
        data=payload.data,
        status="pending",
    )
    db.add(notification)
    db.flush()
    return notification

def mark_notification(db: Session, notification: Notification, status: str, channel: Optional[str], sent_at: Optional[datetime]) -> None:
    notification.status = status
    notification.delivery_channel = channel
    notification.sent_at = sent_at

def get_notifications(db: Session, user_id: int, limit: int = 20) -> List[Notification]:
    return db.query(Notification).filter(
        Notification.user_id == user_id
    ).order_by(Notification.id.desc()).limit(limit).all()
