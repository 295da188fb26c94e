from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from studypack.clock import utcnow
from studypack.database import Base

class TopicPerformance(Base):
    """Per-topic accuracy used for weak topic detection"""
    __tablename__ = "topic_performance"
    __table_args__ = (UniqueConstraint("user_id", "topic"),)
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    topic = Column(String, nullable=False)
    
    # lifetime counters, only ever incremented
    total_attempts = Column(Integer, nullable=False, default=0)
    correct_attempts = Column(Integer, nullable=False, default=0)
    
    accuracy_7day = Column(Float, nullable=False, default=0.0)  # 0-100, recomputed from the window
    last_calculated_at = Column(DateTime, default=utcnow)
