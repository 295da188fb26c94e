"""SQLAlchemy-backed collaborators for the scheduling core."""
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.orm import sessionmaker

from studypack import crud
from studypack.clock import Clock, local_date, utcnow
from studypack.database import session_scope
from studypack.schemas import GradedResponse, ReviewItem, StudySessionSchema, TopicPerformanceSchema


class SqlContentStore:
    """Review items and study sessions, one short transaction per call"""

    def __init__(self, session_factory: sessionmaker, timezone: str = "Asia/Bangkok", clock: Clock = utcnow):
        self.session_factory = session_factory
        self.timezone = timezone
        self.clock = clock

    def today(self):
        return local_date(self.clock(), self.timezone)

    def get_due_items(
        self, user_id: int, item_type: str, limit: int, as_of: Optional[datetime] = None
    ) -> List[ReviewItem]:
        with session_scope(self.session_factory) as db:
            return crud.get_due_items(db, user_id, item_type, limit, as_of or self.clock())

    def get_items_by_topics(
        self, user_id: int, topics: Sequence[str], item_type: str, limit: int
    ) -> List[ReviewItem]:
        with session_scope(self.session_factory) as db:
            return crud.get_items_by_topics(db, user_id, topics, item_type, limit)

    def get_unreviewed_items(self, user_id: int, item_type: str, limit: int) -> List[ReviewItem]:
        with session_scope(self.session_factory) as db:
            return crud.get_unreviewed_items(db, user_id, item_type, limit)

    def persist_item_state(self, item_id: int, item_type: str, new_state: ReviewItem) -> None:
        with session_scope(self.session_factory) as db:
            crud.persist_item_state(db, item_id, item_type, new_state)

    def create_study_session(self, user_id: int, session_type: str, items_total: int) -> StudySessionSchema:
        now = self.clock()
        with session_scope(self.session_factory) as db:
            session = crud.create_study_session(
                db, user_id, session_type, items_total,
                session_date=local_date(now, self.timezone),
                started_at=now,
            )
            return StudySessionSchema.model_validate(session)

    def find_active_session_today(self, user_id: int, session_type: str) -> Optional[StudySessionSchema]:
        with session_scope(self.session_factory) as db:
            session = crud.find_open_session(db, user_id, session_type, self.today())
            return StudySessionSchema.model_validate(session) if session else None

    def get_session(self, session_id: int) -> Optional[StudySessionSchema]:
        with session_scope(self.session_factory) as db:
            session = crud.get_session(db, session_id)
            return StudySessionSchema.model_validate(session) if session else None

    def update_session_status(
        self,
        session_id: int,
        status: str,
        items_completed: Optional[int] = None,
        items_correct: Optional[int] = None,
    ) -> StudySessionSchema:
        with session_scope(self.session_factory) as db:
            session = crud.update_session_status(
                db, session_id, status,
                items_completed=items_completed,
                items_correct=items_correct,
                now=self.clock(),
            )
            return StudySessionSchema.model_validate(session)

    def list_user_ids(self) -> List[int]:
        with session_scope(self.session_factory) as db:
            return crud.list_user_ids(db)


class SqlResponseLog:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def append_response(self, response: GradedResponse) -> None:
        with session_scope(self.session_factory) as db:
            crud.append_response(db, response)

    def query_responses(
        self, user_id: int, since: datetime, topics: Optional[Iterable[str]] = None
    ) -> List[GradedResponse]:
        with session_scope(self.session_factory) as db:
            return crud.query_responses(db, user_id, since, topics)

    def list_responding_user_ids(self) -> List[int]:
        with session_scope(self.session_factory) as db:
            return crud.list_responding_user_ids(db)


class SqlTopicPerformanceStore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_topic_performance(
        self, user_id: int, topics: Optional[Iterable[str]] = None
    ) -> List[TopicPerformanceSchema]:
        with session_scope(self.session_factory) as db:
            rows = crud.get_topic_performance(db, user_id, topics)
            return [TopicPerformanceSchema.model_validate(row) for row in rows]

    def increment_attempts(self, user_id: int, topics: Iterable[str], is_correct: bool) -> None:
        with session_scope(self.session_factory) as db:
            crud.increment_attempts(db, user_id, topics, is_correct)

    def upsert_accuracy(
        self, user_id: int, topic: str, accuracy: float, calculated_at: datetime
    ) -> TopicPerformanceSchema:
        with session_scope(self.session_factory) as db:
            row = crud.upsert_accuracy(db, user_id, topic, accuracy, calculated_at)
            return TopicPerformanceSchema.model_validate(row)
