from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON
from studypack.clock import utcnow
from studypack.database import Base

class UserResponse(Base):
    """Append-only log of graded answers"""
    __tablename__ = "user_responses"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Integer, nullable=False)  # flashcards.id or mcqs.id depending on item_type
    item_type = Column(String, nullable=False)  # "flashcard" or "mcq"
    is_correct = Column(Boolean, nullable=False)
    ease_rating = Column(Integer, nullable=False)  # 1-4
    topics = Column(JSON, nullable=False, default=list)  # study set topics at answer time
    response_time_ms = Column(Integer)
    session_id = Column(Integer, ForeignKey("study_sessions.id", ondelete="SET NULL"))
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
