from typing import Optional

import structlog
from sqlalchemy.orm import sessionmaker

from studypack import crud
from studypack.clock import Clock, utcnow
from studypack.crud.items import compare_and_set_item_state, item_model, to_review_item
from studypack.database import session_scope
from studypack.errors import StudyPackError
from studypack.schemas import GradedResponse, ReviewOutcome
from studypack.sm2 import SM2Engine
from studypack.topic_tracker import TopicAccuracyTracker

logger = structlog.get_logger(__name__)

# every failed compare-and-set means some other answer landed in between
MAX_WRITE_ATTEMPTS = 50


class _StaleItemState(Exception):
    """The item changed between reading it and writing the new state"""


class ResponseRecorder:
    """
    Records a graded answer and applies its SM-2 update as one unit.

    The next state is computed from what is stored (never from client
    supplied values) and written with a compare-and-set on review_count, so
    concurrent answers to one item are applied one after the other instead
    of overwriting each other. The new state, the response event, the topic
    counters and the session tally commit together or not at all; a lost
    race rolls everything back and starts over from the fresh state.
    """

    def __init__(self, session_factory: sessionmaker, tracker: TopicAccuracyTracker, clock: Clock = utcnow):
        self.session_factory = session_factory
        self.tracker = tracker
        self.clock = clock

    def record_response(
        self,
        user_id: int,
        item_id: int,
        item_type: str,
        is_correct: bool,
        ease_rating: Optional[int] = None,
        response_time_ms: Optional[int] = None,
        session_id: Optional[int] = None,
    ) -> ReviewOutcome:
        # validate before touching anything
        item_model(item_type)
        ease_rating = SM2Engine.validate_ease_rating(ease_rating)
        now = self.clock()

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            try:
                outcome = self._apply(
                    user_id, item_id, item_type, is_correct, ease_rating, response_time_ms, session_id, now
                )
                break
            except _StaleItemState:
                logger.info("sm2_update_retry", user_id=user_id, item_id=item_id, item_type=item_type, attempt=attempt)
        else:
            raise StudyPackError(
                f"{item_type} {item_id} kept changing underneath; gave up after {MAX_WRITE_ATTEMPTS} attempts"
            )

        updated = outcome.item
        logger.info(
            "sm2_updated",
            user_id=user_id,
            item_id=item_id,
            item_type=item_type,
            review_count=updated.review_count,
            interval_days=updated.interval_days,
            ease_factor=updated.ease_factor,
            difficulty=updated.difficulty,
        )

        if outcome.topics:
            self.tracker.recalculate(user_id, outcome.topics, now=now)
        return outcome

    def _apply(self, user_id, item_id, item_type, is_correct, ease_rating, response_time_ms, session_id, now) -> ReviewOutcome:
        with session_scope(self.session_factory) as db:
            row = crud.get_item_for_update(db, item_id, item_type, user_id=user_id)
            previous = to_review_item(row)
            updated = SM2Engine.update(previous, is_correct, ease_rating, now=now)
            if not compare_and_set_item_state(db, item_id, item_type, previous.review_count, updated):
                raise _StaleItemState()

            if session_id is not None:
                crud.record_session_answer(db, session_id, user_id, is_correct)
            response = crud.append_response(db, GradedResponse(
                user_id=user_id,
                item_id=item_id,
                item_type=item_type,
                is_correct=is_correct,
                ease_rating=ease_rating,
                topics=previous.topics,
                timestamp=now,
                response_time_ms=response_time_ms,
                session_id=session_id,
            ))
            crud.increment_attempts(db, user_id, previous.topics, is_correct)

            return ReviewOutcome(
                response_id=response.id,
                item=updated,
                previous=previous,
                topics=previous.topics,
            )
