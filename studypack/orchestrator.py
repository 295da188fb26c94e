import random
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import structlog

from studypack.clock import Clock, utcnow
from studypack.config import Settings, get_settings
from studypack.errors import NotFoundError, ValidationError
from studypack.interfaces import ContentStore, NotificationSink, ResponseLog, TopicPerformanceStore
from studypack.pack_composer import DailyPackComposer
from studypack.schemas import (
    BatchFailure,
    BatchReport,
    DailyPack,
    DailyPackResult,
    NotificationPayload,
    StudySessionSchema,
)
from studypack.topic_tracker import TopicAccuracyTracker

logger = structlog.get_logger(__name__)

DAILY = "daily"
ALREADY_GENERATED = "Daily pack already generated today"
NO_ITEMS = "No study items available today"

# seconds between checks for finished or overdue users in a batch
_BATCH_POLL_SECONDS = 0.05


class SchedulerOrchestrator:
    """
    Generates daily packs per user and across all users.

    Every collaborator is handed in at construction time; nothing here keeps
    module-level state. Work for one user is serialized by a per-user lock,
    different users never wait on each other.
    """

    def __init__(
        self,
        content_store: ContentStore,
        response_log: ResponseLog,
        topic_store: TopicPerformanceStore,
        notification_sink: NotificationSink,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        clock: Clock = utcnow,
        stats_provider=None,
    ):
        self.settings = settings or get_settings()
        self.content_store = content_store
        self.response_log = response_log
        self.notification_sink = notification_sink
        self.clock = clock
        # Optional studypack.stats.StatsService, only needed for weekly reports
        self.stats_provider = stats_provider

        self.tracker = TopicAccuracyTracker(
            response_log,
            topic_store,
            window_days=self.settings.accuracy_window_days,
            weak_threshold=self.settings.weak_accuracy_threshold,
            default_limit=self.settings.weak_topic_default_limit,
            default_min_attempts=self.settings.weak_topic_default_min_attempts,
            clock=clock,
        )
        self.composer = DailyPackComposer(
            content_store,
            self.tracker,
            policy=self.settings.pack,
            rng=rng,
            clock=clock,
        )

        self._locks_guard = threading.Lock()
        self._user_locks: Dict[int, threading.Lock] = {}
        self._background = ThreadPoolExecutor(max_workers=1, thread_name_prefix="studypack-batch")

    # ------------------------------------------------------------------
    # Single user
    # ------------------------------------------------------------------

    def generate_daily(self, user_id: int, force: bool = False) -> DailyPackResult:
        """
        Create today's daily session for a user.

        Without force, a non-completed daily session for today short-circuits
        and is returned as is. An empty pack creates nothing and sends nothing.
        Collaborator errors propagate to the caller.
        """
        with self._lock_for(user_id):
            if not force:
                existing = self.content_store.find_active_session_today(user_id, DAILY)
                if existing is not None:
                    logger.info("daily_pack_exists", user_id=user_id, session_id=existing.id)
                    return DailyPackResult(
                        user_id=user_id,
                        status="already_generated",
                        message=ALREADY_GENERATED,
                        session=existing,
                    )

            pack = self.composer.compose(user_id)
            if pack.is_empty:
                return DailyPackResult(
                    user_id=user_id,
                    status="empty",
                    message=NO_ITEMS,
                    pack=pack,
                )

            session = self.content_store.create_study_session(user_id, DAILY, len(pack.items))
            delivered = self._send_pack_notification(user_id, session, pack)

            logger.info(
                "daily_pack_generated",
                user_id=user_id,
                session_id=session.id,
                items=len(pack.items),
                forced=force,
            )
            return DailyPackResult(
                user_id=user_id,
                status="created",
                message=f"Daily pack generated with {len(pack.items)} items",
                session=session,
                pack=pack,
                notification_delivered=delivered,
            )

    def build_notification(self, session: StudySessionSchema, pack: DailyPack) -> NotificationPayload:
        breakdown = pack.breakdown
        total = len(pack.items)
        preview = pack.items[:self.settings.notification_preview_size]
        return NotificationPayload(
            type="daily_pack_ready",
            title="Your Daily Study Pack is Ready!",
            message=(
                f"{total} items waiting for you. {breakdown.due_count} due reviews, "
                f"{breakdown.weak_topic_count} weak topics, {breakdown.new_count} new content."
            ),
            data={
                "sessionId": session.id,
                "totalItems": total,
                "dueItems": breakdown.due_count,
                "weakTopicItems": breakdown.weak_topic_count,
                "newItems": breakdown.new_count,
                "weakTopics": [row.topic for row in pack.weak_topics],
                "items": [{"itemId": item.item_id, "itemType": item.item_type} for item in preview],
            },
        )

    def _send_pack_notification(self, user_id: int, session: StudySessionSchema, pack: DailyPack) -> bool:
        payload = self.build_notification(session, pack)
        try:
            result = self.notification_sink.notify(user_id, payload)
        except Exception as exc:
            # Fire and forget: the session stands even if delivery failed
            logger.warning("notification_failed", user_id=user_id, session_id=session.id, error=str(exc))
            return False
        return result.delivered

    def complete_session(
        self,
        session_id: int,
        items_completed: Optional[int] = None,
        items_correct: Optional[int] = None,
    ) -> StudySessionSchema:
        """Accept the externally driven SessionCreated -> Completed transition"""
        session = self._get_session(session_id)
        if items_completed is not None and items_completed < 0:
            raise ValidationError("items_completed must not be negative")
        if items_correct is not None and items_correct < 0:
            raise ValidationError("items_correct must not be negative")
        updated = self.content_store.update_session_status(
            session.id, "completed", items_completed=items_completed, items_correct=items_correct
        )
        logger.info("session_completed", user_id=updated.user_id, session_id=session_id)
        return updated

    def abandon_session(self, session_id: int) -> StudySessionSchema:
        session = self._get_session(session_id)
        if session.status == "completed":
            raise ValidationError(f"session {session_id} is already completed")
        updated = self.content_store.update_session_status(session.id, "abandoned")
        logger.info("session_abandoned", user_id=updated.user_id, session_id=session_id)
        return updated

    def _get_session(self, session_id: int) -> StudySessionSchema:
        session = self.content_store.get_session(session_id)
        if session is None:
            raise NotFoundError("study session", session_id)
        return session

    def _lock_for(self, user_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = self._user_locks[user_id] = threading.Lock()
            return lock

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def run_daily_batch(self, user_ids: Optional[Iterable[int]] = None) -> BatchReport:
        """Generate daily packs for every user; one user's failure never stops the rest"""
        if user_ids is None:
            user_ids = self.content_store.list_user_ids()
        return self._run_batch("daily_packs", user_ids, lambda uid: self.generate_daily(uid).status)

    def start_daily_batch(self, user_ids: Optional[Iterable[int]] = None) -> "Future[BatchReport]":
        """Run the daily batch in the background and hand back its future"""
        return self._background.submit(self.run_daily_batch, user_ids)

    def run_topic_recalculation(self, user_ids: Optional[Iterable[int]] = None) -> BatchReport:
        """Recompute rolling accuracy for every user with responses"""
        if user_ids is None:
            user_ids = self.response_log.list_responding_user_ids()

        def recalc(uid: int) -> str:
            updated = self.tracker.recalculate(uid)
            return f"{len(updated)} topics"

        return self._run_batch("topic_recalculation", user_ids, recalc)

    def run_weekly_reports(self, user_ids: Optional[Iterable[int]] = None) -> BatchReport:
        """Send a weekly report to every user who answered something this week"""
        if self.stats_provider is None:
            raise ValidationError("weekly reports need a stats provider")
        if user_ids is None:
            user_ids = self.content_store.list_user_ids()
        return self._run_batch("weekly_reports", user_ids, self.send_weekly_report)

    def send_weekly_report(self, user_id: int) -> str:
        report = self.stats_provider.weekly_report(user_id)
        if report.stats.total_responses == 0:
            return "no_activity"
        stats = report.stats
        payload = NotificationPayload(
            type="weekly_report",
            title="Your Weekly Study Report",
            message=(
                f"This week: {stats.total_responses} items completed, {stats.accuracy}% accuracy, "
                f"{stats.active_days} active days."
            ),
            data=report.model_dump(mode="json"),
        )
        result = self.notification_sink.notify(user_id, payload)
        return "sent" if result.delivered else "not_delivered"

    def shutdown(self) -> None:
        self._background.shutdown(wait=True)

    def _run_batch(self, job: str, user_ids: Iterable[int], work: Callable[[int], str]) -> BatchReport:
        """
        Run work(user_id) for each user, at most batch_max_workers at a time.

        Each user gets its own daemon thread. A user whose work has been
        running longer than the soft timeout is marked skipped and gives up
        its slot right away, so users still queued behind a hung one start
        on time; the hung thread is left to finish on its own.
        """
        queued = list(dict.fromkeys(user_ids))
        queued.reverse()
        report = BatchReport(job=job, started_at=self.clock())
        timeout = self.settings.batch_user_timeout_seconds
        slots = max(1, self.settings.batch_max_workers)
        logger.info("batch_started", job=job, users=len(queued))

        running: Dict[Future, Tuple[int, float]] = {}
        while queued or running:
            while queued and len(running) < slots:
                uid = queued.pop()
                running[self._spawn(job, uid, work)] = (uid, time.monotonic())

            done, _ = wait(list(running), timeout=_BATCH_POLL_SECONDS, return_when=FIRST_COMPLETED)
            for future in done:
                uid, _began = running.pop(future)
                self._collect(report, job, uid, future)

            now = time.monotonic()
            for future, (uid, began) in list(running.items()):
                if now - began > timeout:
                    running.pop(future)
                    report.skipped.append(uid)
                    report.statuses[uid] = "timeout"
                    logger.warning("batch_user_timeout", job=job, user_id=uid, timeout_seconds=timeout)

        report.finished_at = self.clock()
        logger.info(
            "batch_finished",
            job=job,
            succeeded=len(report.succeeded),
            skipped=len(report.skipped),
            failed=len(report.failures),
        )
        return report

    @staticmethod
    def _spawn(job: str, uid: int, work: Callable[[int], str]) -> Future:
        """Start work(uid) on a daemon thread and hand back a future for its result"""
        future: Future = Future()
        future.set_running_or_notify_cancel()

        def run() -> None:
            try:
                result = work(uid)
            except Exception as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

        threading.Thread(target=run, name=f"studypack-{job}-{uid}", daemon=True).start()
        return future

    @staticmethod
    def _collect(report: BatchReport, job: str, uid: int, future: Future) -> None:
        try:
            status = future.result()
        except Exception as exc:
            report.failures.append(BatchFailure(user_id=uid, cause=str(exc), error_type=type(exc).__name__))
            report.statuses[uid] = "failed"
            logger.error("batch_user_failed", job=job, user_id=uid, error=str(exc), exc_info=exc)
            return
        report.succeeded.append(uid)
        report.statuses[uid] = status
        logger.info("batch_user_done", job=job, user_id=uid, status=status)
