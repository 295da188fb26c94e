import random
import threading
from datetime import timedelta

import pytest

from studypack import crud
from studypack.crud.items import compare_and_set_item_state, to_review_item
from studypack.errors import NotFoundError, ValidationError
from studypack.models import Flashcard
from studypack.schemas import StudySetCreate, UserCreate
from studypack.services import Services
from studypack.sm2 import SM2Engine
from tests.fakes import NOW


def _first_card(services, user_id):
    return services.content_store.get_unreviewed_items(user_id, "flashcard", 10)[-1]


def test_correct_answer_reschedules_item(services, learner, study_set):
    card = _first_card(services, learner.id)

    outcome = services.recorder.record_response(learner.id, card.item_id, "flashcard", True, ease_rating=4)

    assert outcome.previous.review_count == 0
    assert outcome.item.review_count == 1
    assert outcome.item.interval_days == 1
    assert outcome.item.due_at == NOW + timedelta(days=1)
    assert outcome.item.difficulty == 2
    assert outcome.topics == ["biology", "chemistry"]

    stored = services.content_store.get_items_by_topics(learner.id, ["biology"], "flashcard", 10)
    persisted = next(item for item in stored if item.item_id == card.item_id)
    assert persisted.review_count == 1
    assert persisted.last_reviewed_at == NOW


def test_missing_rating_uses_default(services, learner, study_set):
    card = _first_card(services, learner.id)

    services.recorder.record_response(learner.id, card.item_id, "flashcard", True)

    event = services.response_log.query_responses(learner.id, NOW - timedelta(days=1))[0]
    assert event.ease_rating == 3
    assert event.topics == ["biology", "chemistry"]


def test_response_updates_topic_accuracy(services, learner, study_set):
    cards = services.content_store.get_unreviewed_items(learner.id, "flashcard", 10)

    services.recorder.record_response(learner.id, cards[0].item_id, "flashcard", True)
    services.recorder.record_response(learner.id, cards[1].item_id, "flashcard", False)

    rows = {row.topic: row for row in services.topic_store.get_topic_performance(learner.id)}
    assert rows["biology"].total_attempts == 2
    assert rows["biology"].correct_attempts == 1
    assert rows["biology"].accuracy_7day == 50.0
    assert rows["chemistry"].accuracy_7day == 50.0


def test_response_counts_against_session(services, learner, study_set):
    session = services.orchestrator.generate_daily(learner.id).session
    mcq = services.content_store.get_unreviewed_items(learner.id, "mcq", 10)[0]

    services.recorder.record_response(learner.id, mcq.item_id, "mcq", True, session_id=session.id)

    stored = services.content_store.get_session(session.id)
    assert stored.items_completed == 1
    assert stored.items_correct == 1
    assert services.response_log.query_responses(learner.id, NOW - timedelta(days=1))[0].session_id == session.id


def test_unknown_session_rolls_back_everything(services, learner, study_set):
    card = _first_card(services, learner.id)

    with pytest.raises(NotFoundError):
        services.recorder.record_response(learner.id, card.item_id, "flashcard", True, session_id=999)

    assert services.response_log.query_responses(learner.id, NOW - timedelta(days=1)) == []
    assert services.topic_store.get_topic_performance(learner.id) == []
    untouched = services.content_store.get_unreviewed_items(learner.id, "flashcard", 10)
    assert card.item_id in [item.item_id for item in untouched]


def test_item_of_another_user_is_not_found(services, db, learner, study_set):
    intruder = crud.create_user(db, UserCreate(email="eve@example.com", full_name="Eve"))
    card = _first_card(services, learner.id)

    with pytest.raises(NotFoundError):
        services.recorder.record_response(intruder.id, card.item_id, "flashcard", True)


def test_unknown_item(services, learner, study_set):
    with pytest.raises(NotFoundError):
        services.recorder.record_response(learner.id, 9999, "mcq", True)


@pytest.mark.parametrize("item_type,rating", [("essay", 3), ("flashcard", 0), ("flashcard", 5)])
def test_invalid_input_touches_nothing(services, learner, study_set, item_type, rating):
    card = _first_card(services, learner.id)

    with pytest.raises(ValidationError):
        services.recorder.record_response(learner.id, card.item_id, item_type, True, ease_rating=rating)

    assert services.response_log.query_responses(learner.id, NOW - timedelta(days=1)) == []


def test_repeated_answers_follow_sm2_sequence(services, learner, study_set, clock):
    card = _first_card(services, learner.id)

    intervals = []
    for _ in range(3):
        outcome = services.recorder.record_response(learner.id, card.item_id, "flashcard", True, ease_rating=3)
        intervals.append(outcome.item.interval_days)
        clock.advance(days=outcome.item.interval_days)

    assert intervals == [1, 6, 13]


def test_wrong_answer_brings_item_back_tomorrow(services, db, learner, clock):
    study_set = crud.create_study_set(db, StudySetCreate(
        user_id=learner.id, title="Hard", topics=["physics"], difficulty_level=5,
        mcqs=[{"question": "c?", "correct_answer": "3e8 m/s", "distractors": ["1", "2", "3"]}],
    ), now=clock())
    mcq_id = study_set.mcqs[0].id

    outcome = services.recorder.record_response(learner.id, mcq_id, "mcq", False, ease_rating=1)

    assert outcome.item.difficulty == 5
    assert outcome.item.interval_days == 1
    assert outcome.item.ease_factor == 2.5
    assert services.topic_store.get_topic_performance(learner.id, ["physics"])[0].accuracy_7day == 0.0


def test_stale_review_count_is_not_written(services, db, learner, study_set):
    card = _first_card(services, learner.id)
    row = db.get(Flashcard, card.item_id)
    state = SM2Engine.update(to_review_item(row), True, 4, now=NOW)

    assert not compare_and_set_item_state(db, card.item_id, "flashcard", 3, state)
    assert compare_and_set_item_state(db, card.item_id, "flashcard", 0, state)
    db.commit()
    db.expire_all()
    assert db.get(Flashcard, card.item_id).review_count == 1


def test_concurrent_answers_are_all_applied(settings, clock, tmp_path):
    file_settings = settings.model_copy(update={"database_url": f"sqlite:///{tmp_path / 'answers.db'}"})
    services = Services(file_settings, rng=random.Random(7), clock=clock)
    services.init_db()
    db = services.session_factory()
    try:
        user = crud.create_user(db, UserCreate(email="ana@example.com", full_name="Ana"))
        crud.create_study_set(db, StudySetCreate(
            user_id=user.id, title="Cells", topics=["biology"],
            flashcards=[{"front": "Powerhouse?", "back": "Mitochondria"}],
        ), now=clock())
        card = _first_card(services, user.id)

        answers = 16
        barrier = threading.Barrier(answers)
        errors = []

        def answer():
            barrier.wait()
            try:
                services.recorder.record_response(user.id, card.item_id, "flashcard", True)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=answer) for _ in range(answers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        db.expire_all()
        assert db.get(Flashcard, card.item_id).review_count == answers
        assert len(services.response_log.query_responses(user.id, NOW - timedelta(days=1))) == answers
        topic = services.topic_store.get_topic_performance(user.id, ["biology"])[0]
        assert topic.total_attempts == answers
        assert topic.correct_attempts == answers
    finally:
        db.close()
        services.close()
