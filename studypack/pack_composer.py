import random
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple

import structlog

from studypack.clock import Clock, utcnow
from studypack.config import PackPolicy
from studypack.interfaces import ContentStore
from studypack.schemas import DailyPack, PackBreakdown, ReviewItem, TopicPerformanceSchema
from studypack.topic_tracker import TopicAccuracyTracker

logger = structlog.get_logger(__name__)

EPOCH = datetime(1970, 1, 1)

DUE = "due"
WEAK = "weak"
NEW = "new"


def merge_buckets(
    buckets: Sequence[Tuple[str, Sequence[ReviewItem]]],
    max_items: int,
) -> List[Tuple[str, ReviewItem]]:
    """
    Concatenate buckets in priority order, drop repeated (item_id, item_type)
    keys keeping the first occurrence, and truncate to max_items.

    Returns (bucket_name, item) pairs so callers can tell where each item came from.
    """
    seen = set()
    merged = []
    for name, items in buckets:
        for item in items:
            if item.key in seen:
                continue
            seen.add(item.key)
            merged.append((name, item))
    return merged[:max(0, max_items)]


class DailyPackComposer:
    """
    Builds a user's daily pack from three buckets:

    1. due reviews, earliest due first, harder first among equally due
    2. items tagged with the user's weak topics, hardest first
    3. never reviewed items, newest first

    Ties in buckets 2 and 3 are broken with the injected random source, so a
    seeded `random.Random` makes composition fully reproducible.
    """

    def __init__(
        self,
        content_store: ContentStore,
        tracker: TopicAccuracyTracker,
        policy: Optional[PackPolicy] = None,
        rng: Optional[random.Random] = None,
        clock: Clock = utcnow,
    ):
        self.content_store = content_store
        self.tracker = tracker
        self.policy = policy or PackPolicy()
        self.rng = rng or random.Random()
        self.clock = clock

    def compose(self, user_id: int, now: Optional[datetime] = None) -> DailyPack:
        """Assemble the pack; an empty one is a normal outcome"""
        now = now or self.clock()
        policy = self.policy

        due_items = self._due_bucket(user_id, now)

        weak_topics = self.tracker.weak_topics(
            user_id,
            limit=policy.weak_topic_limit,
            min_attempts=policy.weak_topic_min_attempts,
        )
        weak_items = self._weak_bucket(user_id, weak_topics) if weak_topics else []

        new_items = self._new_bucket(user_id)

        merged = merge_buckets(
            [(DUE, due_items), (WEAK, weak_items), (NEW, new_items)],
            policy.max_items,
        )

        breakdown = PackBreakdown()
        for name, item in merged:
            if name == DUE:
                breakdown.due_count += 1
                if item.item_type == "flashcard":
                    breakdown.due_flashcards += 1
                else:
                    breakdown.due_mcqs += 1
            elif name == WEAK:
                breakdown.weak_topic_count += 1
            else:
                breakdown.new_count += 1

        pack = DailyPack(
            user_id=user_id,
            items=[item for _, item in merged],
            breakdown=breakdown,
            weak_topics=weak_topics,
            composed_at=now,
        )

        if pack.is_empty:
            logger.info("daily_pack_empty", user_id=user_id)
        else:
            logger.info(
                "daily_pack_composed",
                user_id=user_id,
                items=len(pack.items),
                due=breakdown.due_count,
                weak=breakdown.weak_topic_count,
                new=breakdown.new_count,
            )
        return pack

    def _due_bucket(self, user_id: int, now: datetime) -> List[ReviewItem]:
        flashcards = self.content_store.get_due_items(
            user_id, "flashcard", self.policy.due_flashcards, as_of=now
        )[:self.policy.due_flashcards]
        mcqs = self.content_store.get_due_items(
            user_id, "mcq", self.policy.due_mcqs, as_of=now
        )[:self.policy.due_mcqs]

        return sorted(flashcards + mcqs, key=lambda item: (item.due_at, -item.difficulty))

    def _weak_bucket(self, user_id: int, weak_topics: List[TopicPerformanceSchema]) -> List[ReviewItem]:
        topic_names = [row.topic for row in weak_topics]
        pool = self.policy.candidate_pool_size

        picked = []
        for item_type, cap in (("flashcard", self.policy.weak_flashcards), ("mcq", self.policy.weak_mcqs)):
            candidates = self.content_store.get_items_by_topics(user_id, topic_names, item_type, pool)
            picked.extend(self._pick(candidates, lambda item: -item.difficulty, cap))

        picked.sort(key=lambda pair: pair[0])
        return [item for _, item in picked]

    def _new_bucket(self, user_id: int) -> List[ReviewItem]:
        pool = self.policy.candidate_pool_size

        picked = []
        for item_type, cap in (("flashcard", self.policy.new_flashcards), ("mcq", self.policy.new_mcqs)):
            candidates = [
                item for item in self.content_store.get_unreviewed_items(user_id, item_type, pool)
                if item.review_count == 0
            ]
            # newest first
            picked.extend(self._pick(candidates, lambda item: -((item.created_at or EPOCH) - EPOCH), cap))

        picked.sort(key=lambda pair: pair[0])
        return [item for _, item in picked]

    def _pick(
        self,
        candidates: Sequence[ReviewItem],
        primary: Callable[[ReviewItem], Any],
        cap: int,
    ) -> List[Tuple[Tuple[Any, float], ReviewItem]]:
        """Rank by the primary key with a random tie-break and keep the first cap"""
        if cap <= 0:
            return []
        ranked = [((primary(item), self.rng.random()), item) for item in candidates]
        ranked.sort(key=lambda pair: pair[0])
        return ranked[:cap]
