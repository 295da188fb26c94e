"""In-memory collaborators and a controllable clock for the scheduling core."""
import threading
import time
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from studypack.errors import NotFoundError
from studypack.schemas import (
    DeliveryResult,
    GradedResponse,
    NotificationPayload,
    ReviewItem,
    StudySessionSchema,
    TopicPerformanceSchema,
)

NOW = datetime(2024, 3, 15, 9, 0, 0)


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_item(
    item_id: int,
    item_type: str = "flashcard",
    due_in_days: float = 0,
    difficulty: int = 2,
    review_count: int = 1,
    topics: Sequence[str] = ("general",),
    created_days_ago: float = 10,
    now: datetime = NOW,
    **extra,
) -> ReviewItem:
    return ReviewItem(
        item_id=item_id,
        item_type=item_type,
        difficulty=difficulty,
        due_at=now + timedelta(days=due_in_days),
        review_count=review_count,
        created_at=now - timedelta(days=created_days_ago),
        topics=list(topics),
        **extra,
    )


def _types(item_type: str) -> Set[str]:
    return {"flashcard", "mcq"} if item_type == "both" else {item_type}


class FakeContentStore:
    def __init__(self, clock: FixedClock):
        self.clock = clock
        self.items: Dict[int, List[ReviewItem]] = {}
        self.sessions: Dict[int, StudySessionSchema] = {}
        self.users: List[int] = []
        self.broken_users: Set[int] = set()
        self.slow_users: Dict[int, float] = {}
        self.blocked_users: Dict[int, threading.Event] = {}
        self._next_session_id = 1

    def add_user(self, user_id: int, items: Iterable[ReviewItem] = ()) -> None:
        if user_id not in self.users:
            self.users.append(user_id)
        self.items.setdefault(user_id, []).extend(items)

    def _check(self, user_id: int) -> None:
        if user_id in self.blocked_users:
            self.blocked_users[user_id].wait()
        if user_id in self.slow_users:
            time.sleep(self.slow_users[user_id])
        if user_id in self.broken_users:
            raise RuntimeError(f"content store unavailable for user {user_id}")

    def get_due_items(self, user_id, item_type, limit, as_of=None):
        self._check(user_id)
        as_of = as_of or self.clock()
        rows = [
            item for item in self.items.get(user_id, [])
            if item.item_type in _types(item_type) and item.due_at <= as_of
        ]
        rows.sort(key=lambda item: (item.due_at, -item.difficulty, item.item_id))
        return rows[:limit]

    def get_items_by_topics(self, user_id, topics, item_type, limit):
        self._check(user_id)
        wanted = set(topics)
        rows = [
            item for item in self.items.get(user_id, [])
            if item.item_type in _types(item_type) and wanted.intersection(item.topics)
        ]
        rows.sort(key=lambda item: (-item.difficulty, item.item_id))
        return rows[:limit]

    def get_unreviewed_items(self, user_id, item_type, limit):
        self._check(user_id)
        rows = [
            item for item in self.items.get(user_id, [])
            if item.item_type in _types(item_type) and item.review_count == 0
        ]
        rows.sort(key=lambda item: (item.created_at, item.item_id), reverse=True)
        return rows[:limit]

    def persist_item_state(self, item_id, item_type, new_state):
        for rows in self.items.values():
            for i, item in enumerate(rows):
                if item.key == (item_id, item_type):
                    rows[i] = new_state
                    return
        raise NotFoundError(item_type, item_id)

    def create_study_session(self, user_id, session_type, items_total):
        session = StudySessionSchema(
            id=self._next_session_id,
            user_id=user_id,
            session_type=session_type,
            session_date=self.clock().date(),
            status="active",
            items_total=items_total,
            started_at=self.clock(),
        )
        self.sessions[session.id] = session
        self._next_session_id += 1
        return session

    def find_active_session_today(self, user_id, session_type):
        today = self.clock().date()
        for session in sorted(self.sessions.values(), key=lambda s: s.id, reverse=True):
            if (
                session.user_id == user_id
                and session.session_type == session_type
                and session.session_date == today
                and session.status != "completed"
            ):
                return session
        return None

    def get_session(self, session_id):
        return self.sessions.get(session_id)

    def update_session_status(self, session_id, status, items_completed=None, items_correct=None):
        session = self.sessions[session_id]
        update = {"status": status}
        if items_completed is not None:
            update["items_completed"] = items_completed
        if items_correct is not None:
            update["items_correct"] = items_correct
        if status == "completed":
            update["completed_at"] = self.clock()
        self.sessions[session_id] = session.model_copy(update=update)
        return self.sessions[session_id]

    def list_user_ids(self):
        return list(self.users)

    def daily_sessions_for(self, user_id: int) -> List[StudySessionSchema]:
        return [s for s in self.sessions.values() if s.user_id == user_id and s.session_type == "daily"]


class FakeResponseLog:
    def __init__(self):
        self.events: List[GradedResponse] = []

    def append_response(self, response: GradedResponse) -> None:
        self.events.append(response)

    def query_responses(self, user_id, since, topics=None):
        wanted = set(topics) if topics is not None else None
        return [
            event for event in self.events
            if event.user_id == user_id
            and event.timestamp >= since
            and (wanted is None or wanted.intersection(event.topics))
        ]

    def list_responding_user_ids(self):
        return sorted({event.user_id for event in self.events})


class FakeTopicStore:
    def __init__(self):
        self.rows: Dict[Tuple[int, str], TopicPerformanceSchema] = {}

    def seed(self, user_id: int, topic: str, accuracy: float, attempts: int, correct: Optional[int] = None) -> None:
        self.rows[(user_id, topic)] = TopicPerformanceSchema(
            user_id=user_id,
            topic=topic,
            total_attempts=attempts,
            correct_attempts=correct if correct is not None else round(attempts * accuracy / 100),
            accuracy_7day=accuracy,
        )

    def get_topic_performance(self, user_id, topics=None):
        wanted = set(topics) if topics is not None else None
        return sorted(
            (
                row for (uid, topic), row in self.rows.items()
                if uid == user_id and (wanted is None or topic in wanted)
            ),
            key=lambda row: row.topic,
        )

    def _row(self, user_id, topic):
        return self.rows.get((user_id, topic)) or TopicPerformanceSchema(user_id=user_id, topic=topic)

    def increment_attempts(self, user_id, topics, is_correct):
        for topic in topics:
            row = self._row(user_id, topic)
            self.rows[(user_id, topic)] = row.model_copy(update={
                "total_attempts": row.total_attempts + 1,
                "correct_attempts": row.correct_attempts + (1 if is_correct else 0),
            })

    def upsert_accuracy(self, user_id, topic, accuracy, calculated_at):
        row = self._row(user_id, topic).model_copy(update={
            "accuracy_7day": accuracy,
            "last_calculated_at": calculated_at,
        })
        self.rows[(user_id, topic)] = row
        return row


class FakeNotificationSink:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Tuple[int, NotificationPayload]] = []

    def notify(self, user_id, payload):
        if self.fail:
            raise ConnectionError("sink down")
        self.sent.append((user_id, payload))
        return DeliveryResult(delivered=True, channel="fake")
