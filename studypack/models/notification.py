from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from studypack.clock import utcnow
from studypack.database import Base

class Notification(Base):
    """Audit record of every payload handed to the notification sink"""
    __tablename__ = "notifications"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False)  # "daily_pack_ready", "weekly_report"
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, default=dict)
    status = Column(String, nullable=False, default="pending")  # "pending", "sent" or "failed"
    delivery_channel = Column(String)
    sent_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
