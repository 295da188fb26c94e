from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional, Tuple
from datetime import date, datetime

from studypack.errors import EmptyResultError, PartialBatchFailure

ItemType = Literal["flashcard", "mcq"]
SESSION_TYPES: Tuple[str, ...] = ("daily", "review", "practice")


class UserCreate(BaseModel):
    """Schema for creating a learner account"""
    email: str
    full_name: str
    preferences: Dict[str, Any] = Field(default_factory=dict)


class UserSchema(UserCreate):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FlashcardCreate(BaseModel):
    front: str
    back: str


class MCQCreate(BaseModel):
    question: str
    correct_answer: str
    distractors: List[str] = Field(default_factory=list)
    explanation: Optional[str] = None


class StudySetCreate(BaseModel):
    """Schema for importing a generated study set and its items"""
    user_id: int
    title: str
    description: Optional[str] = None
    topics: List[str]
    difficulty_level: int = 2
    flashcards: List[FlashcardCreate] = Field(default_factory=list)
    mcqs: List[MCQCreate] = Field(default_factory=list)


class ReviewItem(BaseModel):
    """Spaced repetition state of one flashcard or MCQ"""
    item_id: int
    item_type: ItemType
    study_set_id: Optional[int] = None
    difficulty: int = Field(default=2, ge=0, le=5)
    interval_days: int = Field(default=1, ge=1)
    ease_factor: float = Field(default=2.5, ge=1.3)
    due_at: datetime
    last_reviewed_at: Optional[datetime] = None
    review_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    topics: List[str] = Field(default_factory=list)

    @property
    def key(self) -> Tuple[int, str]:
        return (self.item_id, self.item_type)


class GradedResponse(BaseModel):
    """One graded answer; never mutated after it is logged"""
    user_id: int
    item_id: int
    item_type: ItemType
    is_correct: bool
    ease_rating: int = 3
    topics: List[str] = Field(default_factory=list)
    timestamp: datetime
    response_time_ms: Optional[int] = None
    session_id: Optional[int] = None

    class Config:
        frozen = True


class TopicPerformanceSchema(BaseModel):
    user_id: int
    topic: str
    total_attempts: int = 0
    correct_attempts: int = 0
    accuracy_7day: float = 0.0
    last_calculated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StudySessionSchema(BaseModel):
    id: int
    user_id: int
    session_type: str
    session_date: date
    status: str
    items_total: int
    items_completed: int = 0
    items_correct: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PackBreakdown(BaseModel):
    """How many items of the final pack came from each bucket"""
    due_count: int = 0
    weak_topic_count: int = 0
    new_count: int = 0
    due_flashcards: int = 0
    due_mcqs: int = 0


class DailyPack(BaseModel):
    user_id: int
    items: List[ReviewItem] = Field(default_factory=list)
    breakdown: PackBreakdown = Field(default_factory=PackBreakdown)
    weak_topics: List[TopicPerformanceSchema] = Field(default_factory=list)
    composed_at: datetime

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0


class NotificationPayload(BaseModel):
    type: str
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


class DeliveryResult(BaseModel):
    delivered: bool
    channel: Optional[str] = None
    notification_id: Optional[int] = None
    error: Optional[str] = None


class DailyPackResult(BaseModel):
    """Outcome of one daily generation attempt for one user"""
    user_id: int
    status: Literal["created", "already_generated", "empty"]
    message: str
    session: Optional[StudySessionSchema] = None
    pack: Optional[DailyPack] = None
    notification_delivered: bool = False

    def raise_for_empty(self) -> None:
        """Raise EmptyResultError when there was nothing to put in the pack"""
        if self.status == "empty":
            raise EmptyResultError(self.message)


class BatchFailure(BaseModel):
    user_id: int
    cause: str
    error_type: str


class BatchReport(BaseModel):
    """Result of a multi-user run; failures are recorded, never raised"""
    job: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    succeeded: List[int] = Field(default_factory=list)
    skipped: List[int] = Field(default_factory=list)  # soft timeout hit
    failures: List[BatchFailure] = Field(default_factory=list)
    statuses: Dict[int, str] = Field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PartialBatchFailure(self.failures)


class ReviewOutcome(BaseModel):
    """What a recorded response changed"""
    response_id: int
    item: ReviewItem
    previous: ReviewItem
    topics: List[str]


class StudyStats(BaseModel):
    total_responses: int = 0
    correct_responses: int = 0
    accuracy: float = 0.0
    avg_response_time_ms: int = 0
    active_days: int = 0
    period_days: int = 7


class SchedulerStats(BaseModel):
    daily_sessions: int = 0
    completed_daily_sessions: int = 0
    avg_daily_accuracy: Optional[float] = None
    last_daily_session: Optional[datetime] = None


class PreviewDay(BaseModel):
    date: date
    item_count: int = 0
    flashcards: int = 0
    mcqs: int = 0


class WeeklyReport(BaseModel):
    user_id: int
    stats: StudyStats
    study_streak: int = 0
    top_topics: List[TopicPerformanceSchema] = Field(default_factory=list)
