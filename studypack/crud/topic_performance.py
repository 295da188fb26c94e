from sqlalchemy.orm import Session
from studypack.clock import utcnow
from studypack.models import TopicPerformance
from datetime import datetime
from typing import Iterable, List, Optional

def get_topic_performance(db: Session, user_id: int, topics: Optional[Iterable[str]] = None) -> List[TopicPerformance]:
    query = db.query(TopicPerformance).filter(TopicPerformance.user_id == user_id)
    if topics is not None:
        query = query.filter(TopicPerformance.topic.in_(list(topics)))
    return query.order_by(TopicPerformance.topic).all()

def _get_or_create(db: Session, user_id: int, topic: str) -> TopicPerformance:
    row = db.query(TopicPerformance).filter(
        TopicPerformance.user_id == user_id,
        TopicPerformance.topic == topic
    ).with_for_update().first()
    if row is None:
        row = TopicPerformance(
            user_id=user_id,
            topic=topic,
            total_attempts=0,
            correct_attempts=0,
            accuracy_7day=0.0,
            last_calculated_at=utcnow(),
        )
        db.add(row)
        db.flush()
    return row

def increment_attempts(db: Session, user_id: int, topics: Iterable[str], is_correct: bool) -> None:
    """Bump lifetime counters once per topic; the caller commits"""
    for topic in topics:
        row = _get_or_create(db, user_id, topic)
        row.total_attempts += 1
        if is_correct:
            row.correct_attempts += 1

def upsert_accuracy(db: Session, user_id: int, topic: str, accuracy: float, calculated_at: datetime) -> TopicPerformance:
    row = _get_or_create(db, user_id, topic)
    row.accuracy_7day = accuracy
    row.last_calculated_at = calculated_at
    db.flush()
    return row

def get_top_topics(db: Session, user_id: int, min_attempts: int = 3, limit: int = 3) -> List[TopicPerformance]:
    """Best performing topics by rolling accuracy"""
    return db.query(TopicPerformance).filter(
        TopicPerformance.user_id == user_id,
        TopicPerformance.total_attempts >= min_attempts
    ).order_by(TopicPerformance.accuracy_7day.desc(), TopicPerformance.total_attempts.desc()).limit(limit).all()
