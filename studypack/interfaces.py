"""Collaborator interfaces consumed by the scheduling core.

The core never talks to a database directly; it is handed objects that
satisfy these protocols. `studypack.stores` and `studypack.notifications`
provide the SQLAlchemy-backed implementations, tests use in-memory fakes.
"""
from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Sequence

from studypack.schemas import (
    DeliveryResult,
    GradedResponse,
    NotificationPayload,
    ReviewItem,
    StudySessionSchema,
    TopicPerformanceSchema,
)


class ContentStore(Protocol):
    """Queries over review items and study sessions"""

    def get_due_items(
        self, user_id: int, item_type: str, limit: int, as_of: Optional[datetime] = None
    ) -> List[ReviewItem]:
        """Items with due_at <= as_of, ordered by due_at asc then difficulty desc"""
        ...

    def get_items_by_topics(
        self, user_id: int, topics: Sequence[str], item_type: str, limit: int
    ) -> List[ReviewItem]:
        """Hardest first; items tied on difficulty with the last one past limit are included too"""
        ...

    def get_unreviewed_items(self, user_id: int, item_type: str, limit: int) -> List[ReviewItem]:
        """Newest first; items tied on created_at with the last one past limit are included too"""
        ...

    def persist_item_state(self, item_id: int, item_type: str, new_state: ReviewItem) -> None:
        """Raises NotFoundError for an unknown item"""
        ...

    def create_study_session(self, user_id: int, session_type: str, items_total: int) -> StudySessionSchema:
        ...

    def find_active_session_today(self, user_id: int, session_type: str) -> Optional[StudySessionSchema]:
        ...

    def get_session(self, session_id: int) -> Optional[StudySessionSchema]:
        ...

    def update_session_status(
        self,
        session_id: int,
        status: str,
        items_completed: Optional[int] = None,
        items_correct: Optional[int] = None,
    ) -> StudySessionSchema:
        ...

    def list_user_ids(self) -> List[int]:
        ...


class ResponseLog(Protocol):
    """Append-only store of graded responses"""

    def append_response(self, response: GradedResponse) -> None:
        ...

    def query_responses(
        self, user_id: int, since: datetime, topics: Optional[Iterable[str]] = None
    ) -> Iterable[GradedResponse]:
        """Events with timestamp >= since, optionally only those touching the topics"""
        ...

    def list_responding_user_ids(self) -> List[int]:
        ...


class TopicPerformanceStore(Protocol):
    """Persistence for per-user topic counters and rolling accuracy"""

    def get_topic_performance(
        self, user_id: int, topics: Optional[Iterable[str]] = None
    ) -> List[TopicPerformanceSchema]:
        ...

    def increment_attempts(self, user_id: int, topics: Iterable[str], is_correct: bool) -> None:
        ...

    def upsert_accuracy(
        self, user_id: int, topic: str, accuracy: float, calculated_at: datetime
    ) -> TopicPerformanceSchema:
        ...


class NotificationSink(Protocol):
    """Delivery of user-facing notifications; channel fan-out is the sink's concern"""

    def notify(self, user_id: int, payload: NotificationPayload) -> DeliveryResult:
        ...
