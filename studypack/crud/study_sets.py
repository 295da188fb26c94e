from sqlalchemy.orm import Session
from studypack.clock import utcnow
from studypack.errors import NotFoundError, ValidationError
from studypack.models import StudySet, StudySetTopic, Flashcard, MCQ
from studypack.schemas import StudySetCreate
from studypack.topic_tracker import normalize_topics
from datetime import datetime
from typing import Optional

def create_study_set(db: Session, data: StudySetCreate, now: Optional[datetime] = None) -> StudySet:
    """
    Store a generated study set with its flashcards and MCQs.

    Every item starts with the set's difficulty level, due immediately and
    never reviewed.
    """
    topics = normalize_topics(data.topics)
    if not topics:
        raise ValidationError("a study set needs at least one topic")
    if data.difficulty_level < 0 or data.difficulty_level > 5:
        raise ValidationError(f"difficulty_level must be between 0 and 5, got {data.difficulty_level}")
    
    now = now or utcnow()
    study_set = StudySet(
        user_id=data.user_id,
        title=data.title,
        description=data.description,
        difficulty_level=data.difficulty_level,
        generated_at=now,
    )
    study_set.topic_rows = [StudySetTopic(topic=topic) for topic in topics]
    
    for card in data.flashcards:
        study_set.flashcards.append(Flashcard(
            front_text=card.front,
            back_text=card.back,
            difficulty=data.difficulty_level,
            due_at=now,
            created_at=now,
        ))
    
    for mcq in data.mcqs:
        study_set.mcqs.append(MCQ(
            question_text=mcq.question,
            correct_answer=mcq.correct_answer,
            distractors=mcq.distractors,
            explanation=mcq.explanation,
            difficulty=data.difficulty_level,
            due_at=now,
            created_at=now,
        ))
    
    db.add(study_set)
    db.commit()
    db.refresh(study_set)
    return study_set

def delete_study_set(db: Session, study_set_id: int, user_id: int) -> None:
    """Bulk removal: the set goes together with all of its items"""
    study_set = db.query(StudySet).filter(
        StudySet.id == study_set_id,
        StudySet.user_id == user_id
    ).first()
    if not study_set:
        raise NotFoundError("study set", study_set_id)
    db.delete(study_set)
    db.commit()
