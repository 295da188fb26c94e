from sqlalchemy.orm import Session
from studypack.models import UserResponse
from studypack.schemas import GradedResponse
from datetime import datetime
from typing import Iterable, List, Optional

def append_response(db: Session, response: GradedResponse) -> UserResponse:
    """Add a graded response to the log; the caller commits"""
    row = UserResponse(
        user_id=response.user_id,
        item_id=response.item_id,
        item_type=response.item_type,
        is_correct=response.is_correct,
        ease_rating=response.ease_rating,
        topics=list(response.topics),
        response_time_ms=response.response_time_ms,
        session_id=response.session_id,
        created_at=response.timestamp,
    )
    db.add(row)
    db.flush()
    return row

def to_graded_response(row: UserResponse) -> GradedResponse:
    return GradedResponse(
        user_id=row.user_id,
        item_id=row.item_id,
        item_type=row.item_type,
        is_correct=row.is_correct,
        ease_rating=row.ease_rating,
        topics=row.topics or [],
        timestamp=row.created_at,
        response_time_ms=row.response_time_ms,
        session_id=row.session_id,
    )

def query_responses(
    db: Session,
    user_id: int,
    since: datetime,
    topics: Optional[Iterable[str]] = None
) -> List[GradedResponse]:
    """Responses at or after since, oldest first"""
    rows = db.query(UserResponse).filter(
        UserResponse.user_id == user_id,
        UserResponse.created_at >= since
    ).order_by(UserResponse.created_at.asc(), UserResponse.id.asc()).all()
    
    events = [to_graded_response(row) for row in rows]
    if topics is not None:
        # topics live in a JSON column, so the overlap filter runs here
        wanted = set(topics)
        events = [event for event in events if wanted.intersection(event.topics)]
    return events

def list_responding_user_ids(db: Session) -> List[int]:
    return [row.user_id for row in db.query(UserResponse.user_id).distinct().order_by(UserResponse.user_id).all()]
