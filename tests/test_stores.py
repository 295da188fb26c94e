from datetime import datetime, timedelta

import pytest

from studypack import crud
from studypack.errors import NotFoundError, ValidationError
from studypack.notifications import DatabaseNotificationSink
from studypack.schemas import GradedResponse, NotificationPayload, StudySetCreate, UserCreate
from studypack.stores import SqlContentStore
from tests.fakes import NOW


def _other_user_set(db, clock, topics=("biology",)):
    other = crud.create_user(db, UserCreate(email="bo@example.com", full_name="Bo"))
    return other, crud.create_study_set(db, StudySetCreate(
        user_id=other.id,
        title="Other",
        topics=list(topics),
        flashcards=[{"front": "Q", "back": "A"}],
    ), now=clock())


def test_create_study_set_initial_state(study_set):
    assert study_set.topics == ["biology", "chemistry"]
    assert len(study_set.flashcards) == 2
    assert len(study_set.mcqs) == 1
    card = study_set.flashcards[0]
    assert card.difficulty == 3
    assert card.review_count == 0
    assert card.ease_factor == 2.5
    assert card.interval_days == 1
    assert card.due_at == NOW
    assert study_set.mcqs[0].distractors == ["Ribosome", "Golgi body", "Vacuole"]


def test_create_study_set_normalizes_topics(db, learner, clock):
    study_set = crud.create_study_set(db, StudySetCreate(
        user_id=learner.id, title="Dup", topics=[" physics", "physics", ""],
    ), now=clock())
    assert study_set.topics == ["physics"]


@pytest.mark.parametrize("topics,level", [([], 2), (["  "], 2), (["physics"], 6), (["physics"], -1)])
def test_create_study_set_rejects_bad_input(db, learner, topics, level):
    with pytest.raises(ValidationError):
        crud.create_study_set(db, StudySetCreate(
            user_id=learner.id, title="Bad", topics=topics, difficulty_level=level,
        ))


def test_due_items_carry_topics(services, learner, study_set):
    store = services.content_store

    due = store.get_due_items(learner.id, "both", 10)
    mcqs = store.get_due_items(learner.id, "mcq", 10)

    assert len(due) == 3
    assert all(item.topics == ["biology", "chemistry"] for item in due)
    assert all(item.study_set_id == study_set.id for item in due)
    assert [item.item_type for item in mcqs] == ["mcq"]


def test_due_items_respect_as_of(services, learner, study_set):
    before = NOW - timedelta(minutes=1)
    assert services.content_store.get_due_items(learner.id, "both", 10, as_of=before) == []


def test_unknown_item_type_rejected(services, learner):
    with pytest.raises(ValidationError):
        services.content_store.get_due_items(learner.id, "essay", 10)


def test_items_by_topics_scoped_to_user(services, db, learner, study_set, clock):
    _other_user_set(db, clock)
    store = services.content_store

    assert len(store.get_items_by_topics(learner.id, ["chemistry"], "both", 10)) == 3
    assert len(store.get_items_by_topics(learner.id, ["biology"], "flashcard", 10)) == 2
    assert store.get_items_by_topics(learner.id, ["history"], "both", 10) == []


def test_candidate_pools_keep_every_tied_item(services, learner, study_set):
    store = services.content_store

    hardest = store.get_items_by_topics(learner.id, ["biology"], "flashcard", 1)
    newest = store.get_unreviewed_items(learner.id, "flashcard", 1)

    assert len(hardest) == 2
    assert len(newest) == 2
    assert len(store.get_unreviewed_items(learner.id, "both", 1)) == 3


def test_unreviewed_items_and_persisted_state(services, learner, study_set, clock):
    store = services.content_store
    card = store.get_unreviewed_items(learner.id, "flashcard", 10)[0]

    store.persist_item_state(card.item_id, "flashcard", card.model_copy(update={
        "review_count": 1,
        "interval_days": 6,
        "due_at": NOW + timedelta(days=6),
        "last_reviewed_at": NOW,
    }))

    remaining = store.get_unreviewed_items(learner.id, "flashcard", 10)
    assert card.item_id not in [item.item_id for item in remaining]
    assert len(remaining) == 1
    assert card.item_id not in [item.item_id for item in store.get_due_items(learner.id, "flashcard", 10)]


def test_persist_unknown_item(services, learner, study_set):
    card = services.content_store.get_due_items(learner.id, "flashcard", 1)[0]
    with pytest.raises(NotFoundError):
        services.content_store.persist_item_state(9999, "flashcard", card)


def test_delete_study_set_removes_items(services, db, learner, study_set):
    with pytest.raises(NotFoundError):
        crud.delete_study_set(db, study_set.id, learner.id + 100)

    crud.delete_study_set(db, study_set.id, learner.id)

    assert services.content_store.get_due_items(learner.id, "both", 10) == []


def test_session_lifecycle(services, learner):
    store = services.content_store

    session = store.create_study_session(learner.id, "daily", 5)
    assert session.session_date == NOW.date()
    assert store.find_active_session_today(learner.id, "daily").id == session.id
    assert store.find_active_session_today(learner.id, "review") is None

    done = store.update_session_status(session.id, "completed", items_completed=5, items_correct=4)
    assert done.completed_at == NOW
    assert store.find_active_session_today(learner.id, "daily") is None
    assert store.get_session(session.id).items_correct == 4
    assert store.get_session(12345) is None


def test_session_validation(services, learner):
    store = services.content_store
    with pytest.raises(ValidationError):
        store.create_study_session(learner.id, "cram", 1)
    session = store.create_study_session(learner.id, "daily", 1)
    with pytest.raises(ValidationError):
        store.update_session_status(session.id, "paused")
    with pytest.raises(NotFoundError):
        store.update_session_status(999, "completed")


def test_session_date_uses_local_calendar(services, learner):
    late_evening_utc = datetime(2024, 3, 15, 20, 0)
    store = SqlContentStore(services.session_factory, timezone="Asia/Bangkok", clock=lambda: late_evening_utc)

    session = store.create_study_session(learner.id, "daily", 1)

    assert session.session_date == datetime(2024, 3, 16).date()
    assert store.find_active_session_today(learner.id, "daily").id == session.id


def test_list_user_ids(services, db, learner, clock):
    other, _ = _other_user_set(db, clock)
    assert services.content_store.list_user_ids() == [learner.id, other.id]


def test_response_log_window_and_topics(services, learner):
    log = services.response_log
    for hours, topics in ((1, ["biology"]), (30, ["chemistry"]), (24 * 10, ["biology"])):
        log.append_response(GradedResponse(
            user_id=learner.id, item_id=1, item_type="flashcard", is_correct=True,
            topics=topics, timestamp=NOW - timedelta(hours=hours),
        ))

    week = log.query_responses(learner.id, NOW - timedelta(days=7))
    biology = log.query_responses(learner.id, NOW - timedelta(days=7), topics=["biology"])

    assert [event.topics for event in week] == [["chemistry"], ["biology"]]
    assert len(biology) == 1
    assert log.list_responding_user_ids() == [learner.id]


def test_topic_store_counters_and_accuracy(services, learner):
    store = services.topic_store

    store.increment_attempts(learner.id, ["biology", "chemistry"], True)
    store.increment_attempts(learner.id, ["biology"], False)
    row = store.upsert_accuracy(learner.id, "biology", 50.0, NOW)

    assert row.total_attempts == 2
    assert row.correct_attempts == 1
    assert row.accuracy_7day == 50.0
    assert row.last_calculated_at == NOW
    assert [r.topic for r in store.get_topic_performance(learner.id)] == ["biology", "chemistry"]
    assert [r.topic for r in store.get_topic_performance(learner.id, ["chemistry"])] == ["chemistry"]


def _payload():
    return NotificationPayload(type="daily_pack_ready", title="Ready", message="3 items")


def test_notification_sink_records_delivery(services, db, learner, clock):
    delivered = []
    sink = DatabaseNotificationSink(
        services.session_factory,
        channels={"push": lambda user, payload: delivered.append((user.id, payload.type))},
        clock=clock,
    )

    result = sink.notify(learner.id, _payload())

    assert result.delivered
    assert result.channel == "push"
    assert delivered == [(learner.id, "daily_pack_ready")]
    stored = crud.get_notifications(db, learner.id)[0]
    assert stored.status == "sent"
    assert stored.delivery_channel == "push"
    assert stored.sent_at == NOW


def test_notification_sink_falls_back_to_next_channel(services, learner):
    def broken(user, payload):
        raise ConnectionError("push gateway down")

    sink = DatabaseNotificationSink(services.session_factory, channels={"push": broken, "email": lambda u, p: None})

    result = sink.notify(learner.id, _payload())

    assert result.delivered
    assert result.channel == "email"


def test_notification_sink_reports_failure(services, db, learner):
    def broken(user, payload):
        raise ConnectionError("push gateway down")

    sink = DatabaseNotificationSink(services.session_factory, channels={"push": broken})

    result = sink.notify(learner.id, _payload())

    assert not result.delivered
    assert "push gateway down" in result.error
    assert crud.get_notifications(db, learner.id)[0].status == "failed"


def test_notification_sink_honours_opt_out(services, db):
    quiet = crud.create_user(db, UserCreate(
        email="quiet@example.com", full_name="Quiet", preferences={"notifications": False},
    ))
    muted_push = crud.create_user(db, UserCreate(
        email="nopush@example.com", full_name="No Push", preferences={"push_notifications": False},
    ))
    sink = DatabaseNotificationSink(
        services.session_factory, channels={"push": lambda u, p: None, "email": lambda u, p: None},
    )

    assert sink.notify(quiet.id, _payload()).delivered is False
    assert sink.notify(muted_push.id, _payload()).channel == "email"


def test_notification_sink_unknown_user(services):
    with pytest.raises(NotFoundError):
        services.notification_sink.notify(4242, _payload())
