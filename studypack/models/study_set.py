from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from studypack.clock import utcnow
from studypack.database import Base

class StudySet(Base):
    """Group of generated review items sharing a topic set"""
    __tablename__ = "study_sets"
    
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    difficulty_level = Column(Integer, default=2)  # initial difficulty of its items, 1-5
    status = Column(String, default="active")
    generated_at = Column(DateTime, default=utcnow)
    
    user = relationship("User", back_populates="study_sets")
    topic_rows = relationship("StudySetTopic", back_populates="study_set", cascade="all, delete-orphan")
    flashcards = relationship("Flashcard", back_populates="study_set", cascade="all, delete-orphan")
    mcqs = relationship("MCQ", back_populates="study_set", cascade="all, delete-orphan")
    
    @property
    def topics(self):
        return sorted(row.topic for row in self.topic_rows)


class StudySetTopic(Base):
    """One topic tag of a study set"""
    __tablename__ = "study_set_topics"
    __table_args__ = (UniqueConstraint("study_set_id", "topic"),)
    
    id = Column(Integer, primary_key=True)
    study_set_id = Column(Integer, ForeignKey("study_sets.id", ondelete="CASCADE"), nullable=False, index=True)
    topic = Column(String, nullable=False, index=True)
    
    study_set = relationship("StudySet", back_populates="topic_rows")
