from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

import structlog

from studypack.clock import Clock, utcnow
from studypack.errors import ValidationError
from studypack.interfaces import ResponseLog, TopicPerformanceStore
from studypack.schemas import TopicPerformanceSchema

logger = structlog.get_logger(__name__)


def normalize_topics(topics: Iterable[str]) -> List[str]:
    """Strip, drop blanks and dedupe, keeping a stable order"""
    seen = []
    for topic in topics or []:
        cleaned = topic.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class TopicAccuracyTracker:
    """
    Rolling per-topic accuracy for one user at a time.

    Lifetime counters are bumped once per response at ingestion time. The
    windowed accuracy is always rebuilt from the response log, so running a
    recalculation twice gives the same numbers.
    """

    def __init__(
        self,
        response_log: ResponseLog,
        topic_store: TopicPerformanceStore,
        window_days: int = 7,
        weak_threshold: float = 70.0,
        default_limit: int = 10,
        default_min_attempts: int = 3,
        clock: Clock = utcnow,
    ):
        self.response_log = response_log
        self.topic_store = topic_store
        self.window_days = window_days
        self.weak_threshold = weak_threshold
        self.default_limit = default_limit
        self.default_min_attempts = default_min_attempts
        self.clock = clock

    def recalculate(
        self,
        user_id: int,
        topics: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> List[TopicPerformanceSchema]:
        """
        Recompute accuracy_7day from responses in the trailing window.

        Args:
            user_id: Learner to recompute for
            topics: Optional subset of topics; all topics seen in-window otherwise
            now: Optional reference time (defaults to the tracker's clock)

        Returns:
            The upserted rows, sorted by topic. Topics without any in-window
            response are not touched and keep their previous accuracy.
        """
        wanted = None
        if topics is not None:
            wanted = set(normalize_topics(topics))
            if not wanted:
                raise ValidationError("topics must not be empty when given")

        now = now or self.clock()
        since = now - timedelta(days=self.window_days)

        attempts = Counter()
        correct = Counter()
        for event in self.response_log.query_responses(user_id, since, wanted):
            if event.timestamp < since:
                continue
            # one observation per tagged topic
            for topic in set(normalize_topics(event.topics)):
                if wanted is not None and topic not in wanted:
                    continue
                attempts[topic] += 1
                if event.is_correct:
                    correct[topic] += 1

        updated = []
        for topic in sorted(attempts):
            accuracy = 100.0 * correct[topic] / attempts[topic] if attempts[topic] else 0.0
            updated.append(self.topic_store.upsert_accuracy(user_id, topic, round(accuracy, 2), now))

        logger.info("topic_accuracy_recalculated", user_id=user_id, topics=len(updated))
        return updated

    def weak_topics(
        self,
        user_id: int,
        limit: Optional[int] = None,
        min_attempts: Optional[int] = None,
    ) -> List[TopicPerformanceSchema]:
        """Topics under the accuracy threshold, worst first, most attempted first on ties"""
        limit = self.default_limit if limit is None else limit
        min_attempts = self.default_min_attempts if min_attempts is None else min_attempts
        if limit <= 0:
            return []

        weak = [
            row for row in self.topic_store.get_topic_performance(user_id)
            if row.total_attempts >= min_attempts and row.accuracy_7day < self.weak_threshold
        ]
        weak.sort(key=lambda row: (row.accuracy_7day, -row.total_attempts, row.topic))
        return weak[:limit]
