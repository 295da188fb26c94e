from datetime import datetime, timedelta
from typing import List

from sqlalchemy.orm import sessionmaker

from studypack import crud
from studypack.clock import Clock, day_bounds, local_date, utcnow
from studypack.database import session_scope
from studypack.schemas import (
    PreviewDay,
    SchedulerStats,
    StudyStats,
    TopicPerformanceSchema,
    WeeklyReport,
)

STREAK_LOOKBACK_DAYS = 30


class StatsService:
    """Read-only study statistics and reports, calendar days in the scheduler timezone"""

    def __init__(self, session_factory: sessionmaker, timezone: str = "Asia/Bangkok", clock: Clock = utcnow):
        self.session_factory = session_factory
        self.timezone = timezone
        self.clock = clock

    def get_study_stats(self, user_id: int, days: int = 7) -> StudyStats:
        now = self.clock()
        with session_scope(self.session_factory) as db:
            responses = crud.query_responses(db, user_id, now - timedelta(days=days))

        total = len(responses)
        correct = sum(1 for r in responses if r.is_correct)
        timings = [r.response_time_ms for r in responses if r.response_time_ms is not None]
        active_days = {local_date(r.timestamp, self.timezone) for r in responses}

        return StudyStats(
            total_responses=total,
            correct_responses=correct,
            accuracy=round(100.0 * correct / total, 2) if total else 0.0,
            avg_response_time_ms=round(sum(timings) / len(timings)) if timings else 0,
            active_days=len(active_days),
            period_days=days,
        )

    def get_scheduler_stats(self, user_id: int) -> SchedulerStats:
        """Daily sessions of the last 30 days"""
        since = self.clock() - timedelta(days=30)
        with session_scope(self.session_factory) as db:
            sessions = [
                s for s in crud.get_study_sessions(db, user_id, since=since, limit=1000)
                if s.session_type == "daily"
            ]
            completed = [s for s in sessions if s.status == "completed"]
            accuracies = [100.0 * s.items_correct / s.items_total for s in completed if s.items_total]

            return SchedulerStats(
                daily_sessions=len(sessions),
                completed_daily_sessions=len(completed),
                avg_daily_accuracy=round(sum(accuracies) / len(accuracies), 2) if accuracies else None,
                last_daily_session=max((s.started_at for s in sessions), default=None),
            )

    def schedule_preview(self, user_id: int, days: int = 7) -> List[PreviewDay]:
        """
        How many items fall due on each of the coming days.
        Today also counts everything that is already overdue.
        """
        today = local_date(self.clock(), self.timezone)
        preview = []
        with session_scope(self.session_factory) as db:
            for offset in range(days):
                day = today + timedelta(days=offset)
                start, end = day_bounds(day, self.timezone)
                if offset == 0:
                    start = datetime.min
                items = crud.get_items_due_between(db, user_id, start, end)
                flashcards = sum(1 for item in items if item.item_type == "flashcard")
                preview.append(PreviewDay(
                    date=day,
                    item_count=len(items),
                    flashcards=flashcards,
                    mcqs=len(items) - flashcards,
                ))
        return preview

    def study_streak(self, user_id: int) -> int:
        """Consecutive days with at least one answer, ending today or yesterday"""
        now = self.clock()
        with session_scope(self.session_factory) as db:
            responses = crud.query_responses(db, user_id, now - timedelta(days=STREAK_LOOKBACK_DAYS + 1))
        active = {local_date(r.timestamp, self.timezone) for r in responses}

        day = local_date(now, self.timezone)
        if day not in active:
            day -= timedelta(days=1)
        streak = 0
        while day in active:
            streak += 1
            day -= timedelta(days=1)
        return streak

    def weekly_report(self, user_id: int) -> WeeklyReport:
        with session_scope(self.session_factory) as db:
            top_topics = [
                TopicPerformanceSchema.model_validate(row)
                for row in crud.get_top_topics(db, user_id, min_attempts=3, limit=3)
            ]
        return WeeklyReport(
            user_id=user_id,
            stats=self.get_study_stats(user_id, days=7),
            study_streak=self.study_streak(user_id),
            top_topics=top_topics,
        )
