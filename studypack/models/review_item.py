from sqlalchemy import Column, Integer, String, Float, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import declared_attr, relationship
from studypack.clock import utcnow
from studypack.database import Base

class ReviewStateMixin:
    """SM-2 spaced repetition fields shared by flashcards and MCQs"""
    
    id = Column(Integer, primary_key=True, index=True)
    
    difficulty = Column(Integer, nullable=False, default=2)  # 0-5, higher = harder
    interval_days = Column(Integer, nullable=False, default=1)
    ease_factor = Column(Float, nullable=False, default=2.5)  # floored at 1.3
    due_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    last_reviewed_at = Column(DateTime)
    review_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    
    @declared_attr
    def study_set_id(cls):
        return Column(Integer, ForeignKey("study_sets.id", ondelete="CASCADE"), nullable=False, index=True)


class Flashcard(ReviewStateMixin, Base):
    """Front/back review card"""
    __tablename__ = "flashcards"
    item_type = "flashcard"
    
    front_text = Column(Text, nullable=False)
    back_text = Column(Text, nullable=False)
    
    study_set = relationship("StudySet", back_populates="flashcards")


class MCQ(ReviewStateMixin, Base):
    """Multiple-choice question"""
    __tablename__ = "mcqs"
    item_type = "mcq"
    
    question_text = Column(Text, nullable=False)
    correct_answer = Column(String, nullable=False)
    distractors = Column(JSON, nullable=False, default=list)  # 3-4 wrong options
    explanation = Column(Text)
    
    study_set = relationship("StudySet", back_populates="mcqs")


ITEM_MODELS = {
    "flashcard": Flashcard,
    "mcq": MCQ,
}
