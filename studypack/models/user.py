from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.orm import relationship
from studypack.clock import utcnow
from studypack.database import Base

class User(Base):
    """Learner account; preferences hold notification opt-outs"""
    __tablename__ = "users"
    
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False)
    full_name = Column(String, nullable=False)
    preferences = Column(JSON, default=dict)  # {"notifications": false, ...}
    created_at = Column(DateTime, default=utcnow)
    
    study_sets = relationship("StudySet", back_populates="user", cascade="all, delete-orphan")
    study_sessions = relationship("StudySession", back_populates="user", cascade="all, delete-orphan")
