from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from studypack.clock import utcnow
from studypack.database import Base

class StudySession(Base):
    """A study session; daily ones are created by the scheduler"""
    __tablename__ = "study_sessions"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    
    session_type = Column(String, nullable=False)  # "daily", "review" or "practice"
    session_date = Column(Date, nullable=False, index=True)  # local calendar date, idempotency key for daily
    status = Column(String, nullable=False, default="active")  # "active", "completed" or "abandoned"
    
    items_total = Column(Integer, nullable=False)
    items_completed = Column(Integer, nullable=False, default=0)
    items_correct = Column(Integer, nullable=False, default=0)
    
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime)
    
    user = relationship("User", back_populates="study_sessions")
