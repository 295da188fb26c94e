from sqlalchemy.orm import Session
from studypack.clock import utcnow
from studypack.errors import NotFoundError, ValidationError
from studypack.models import StudySession
from studypack.schemas import SESSION_TYPES
from datetime import date, datetime
from typing import List, Optional

SESSION_STATUSES = ("active", "completed", "abandoned")

def create_study_session(
    db: Session,
    user_id: int,
    session_type: str,
    items_total: int,
    session_date: date,
    started_at: Optional[datetime] = None
) -> StudySession:
    """Open a new study session"""
    if session_type not in SESSION_TYPES:
        raise ValidationError(f"unknown session_type {session_type!r}")
    session = StudySession(
        user_id=user_id,
        session_type=session_type,
        session_date=session_date,
        items_total=items_total,
        status="active",
        started_at=started_at or utcnow(),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session

def find_open_session(db: Session, user_id: int, session_type: str, session_date: date) -> Optional[StudySession]:
    """Latest session of that type and day that is not completed"""
    return db.query(StudySession).filter(
        StudySession.user_id == user_id,
        StudySession.session_type == session_type,
        StudySession.session_date == session_date,
        StudySession.status != "completed"
    ).order_by(StudySession.started_at.desc(), StudySession.id.desc()).first()

def get_session(db: Session, session_id: int) -> Optional[StudySession]:
    return db.query(StudySession).filter(StudySession.id == session_id).first()

def update_session_status(
    db: Session,
    session_id: int,
    status: str,
    items_completed: Optional[int] = None,
    items_correct: Optional[int] = None,
    now: Optional[datetime] = None
) -> StudySession:
    if status not in SESSION_STATUSES:
        raise ValidationError(f"unknown session status {status!r}")
    session = get_session(db, session_id)
    if not session:
        raise NotFoundError("study session", session_id)
    
    session.status = status
    if items_completed is not None:
        session.items_completed = items_completed
    if items_correct is not None:
        session.items_correct = items_correct
    if status == "completed":
        session.completed_at = now or utcnow()
    db.commit()
    db.refresh(session)
    return session

def record_session_answer(db: Session, session_id: int, user_id: int, is_correct: bool) -> None:
    """Count an answer against its session; the caller commits"""
    session = db.query(StudySession).filter(
        StudySession.id == session_id,
        StudySession.user_id == user_id
    ).with_for_update().first()
    if not session:
        raise NotFoundError("study session", session_id)
    session.items_completed += 1
    if is_correct:
        session.items_correct += 1

def get_study_sessions(db: Session, user_id: int, since: Optional[datetime] = None, limit: int = 50) -> List[StudySession]:
    """Recent study sessions for a user, newest first"""
    query = db.query(StudySession).filter(StudySession.user_id == user_id)
    if since is not None:
        query = query.filter(StudySession.started_at >= since)
    return query.order_by(StudySession.started_at.desc()).limit(limit).all()
