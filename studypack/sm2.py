import math
from datetime import datetime, timedelta
from typing import Optional

from studypack.clock import utcnow
from studypack.errors import ValidationError
from studypack.schemas import ReviewItem

MIN_EASE_FACTOR = 1.3
DEFAULT_EASE_FACTOR = 2.5
DEFAULT_DIFFICULTY = 2
MAX_DIFFICULTY = 5
DEFAULT_EASE_RATING = 3


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SM2Engine:
    """
    SM-2 spaced repetition algorithm for flashcards and MCQs.
    Based on SuperMemo 2 by Piotr Wozniak, with two local rules:
    difficulty moves one step per answer, and a wrong answer resets the
    interval without touching the ease factor.
    """

    @staticmethod
    def validate_ease_rating(ease_rating: Optional[int]) -> int:
        """Return the rating to use, defaulting an absent one to 3"""
        if ease_rating is None:
            return DEFAULT_EASE_RATING
        if isinstance(ease_rating, bool) or not isinstance(ease_rating, int):
            raise ValidationError(f"ease_rating must be an integer 1-4, got {ease_rating!r}")
        if ease_rating < 1 or ease_rating > 4:
            raise ValidationError(f"ease_rating must be between 1 and 4, got {ease_rating}")
        return ease_rating

    @staticmethod
    def update(
        state: ReviewItem,
        is_correct: bool,
        ease_rating: int = DEFAULT_EASE_RATING,
        now: datetime = None  # Optional: use custom time instead of utcnow
    ) -> ReviewItem:
        """
        Calculate the next review state after a graded response.

        Args:
            state: Current review state of the item
            is_correct: Whether the answer was correct
            ease_rating: 1=Again, 2=Hard, 3=Good, 4=Easy
            now: Optional reference time (defaults to utcnow)

        Returns:
            A new, validated ReviewItem; the input is left untouched
        """
        ease_rating = SM2Engine.validate_ease_rating(ease_rating)
        now = now or utcnow()

        new_difficulty = state.difficulty
        new_ease_factor = state.ease_factor

        if is_correct:
            if state.review_count == 0:
                new_interval = 1
            elif state.review_count == 1:
                new_interval = 6
            else:
                new_interval = _round_half_up(state.interval_days * state.ease_factor)

            quality_gap = 5 - ease_rating
            new_ease_factor = state.ease_factor + (0.1 - quality_gap * (0.08 + quality_gap * 0.02))
            if new_ease_factor < MIN_EASE_FACTOR:
                new_ease_factor = MIN_EASE_FACTOR

            new_difficulty = max(0, state.difficulty - 1)
        else:
            # A wrong answer leaves the ease factor alone, only re-applying the floor
            new_interval = 1
            new_ease_factor = max(MIN_EASE_FACTOR, state.ease_factor)
            new_difficulty = min(MAX_DIFFICULTY, state.difficulty + 1)

        new_interval = max(1, new_interval)

        return ReviewItem.model_validate({
            **state.model_dump(),
            "difficulty": new_difficulty,
            "interval_days": new_interval,
            "ease_factor": round(new_ease_factor, 2),
            "due_at": now + timedelta(days=new_interval),
            "last_reviewed_at": now,
            "review_count": state.review_count + 1,
        })

    @staticmethod
    def initial_state(
        item_id: int,
        item_type: str,
        difficulty: int = DEFAULT_DIFFICULTY,
        now: datetime = None
    ) -> ReviewItem:
        """State of a freshly generated item: due immediately, never reviewed"""
        now = now or utcnow()
        return ReviewItem(
            item_id=item_id,
            item_type=item_type,
            difficulty=difficulty,
            interval_days=1,
            ease_factor=DEFAULT_EASE_FACTOR,
            due_at=now,
            review_count=0,
            created_at=now,
        )

    @staticmethod
    def is_due(state: ReviewItem, now: datetime = None) -> bool:
        """Check if an item is due for review"""
        return state.due_at <= (now or utcnow())

    @staticmethod
    def days_overdue(state: ReviewItem, now: datetime = None) -> int:
        """Calculate how many whole days overdue a review is"""
        now = now or utcnow()
        if now < state.due_at:
            return 0
        return (now - state.due_at).days
