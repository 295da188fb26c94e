import random

import pytest

from studypack.config import Settings
from studypack.orchestrator import SchedulerOrchestrator
from studypack.schemas import StudySetCreate, UserCreate, FlashcardCreate, MCQCreate
from studypack.services import Services
from studypack import crud
from tests.fakes import (
    FakeContentStore,
    FakeNotificationSink,
    FakeResponseLog,
    FakeTopicStore,
    FixedClock,
)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        scheduler_timezone="UTC",
        batch_max_workers=3,
        batch_user_timeout_seconds=5.0,
    )


@pytest.fixture
def content_store(clock):
    return FakeContentStore(clock)


@pytest.fixture
def response_log():
    return FakeResponseLog()


@pytest.fixture
def topic_store():
    return FakeTopicStore()


@pytest.fixture
def sink():
    return FakeNotificationSink()


@pytest.fixture
def orchestrator(content_store, response_log, topic_store, sink, settings, clock):
    orch = SchedulerOrchestrator(
        content_store,
        response_log,
        topic_store,
        sink,
        settings=settings,
        rng=random.Random(42),
        clock=clock,
    )
    yield orch
    orch.shutdown()


@pytest.fixture
def services(settings, clock):
    """Fully wired services over an in-memory SQLite database"""
    svc = Services(settings, rng=random.Random(7), clock=clock)
    svc.init_db()
    yield svc
    svc.close()


@pytest.fixture
def db(services):
    session = services.session_factory()
    yield session
    session.close()


@pytest.fixture
def learner(db):
    return crud.create_user(db, UserCreate(email="ana@example.com", full_name="Ana Learner"))


@pytest.fixture
def study_set(db, learner, clock):
    """Two flashcards and one MCQ tagged with biology and chemistry"""
    return crud.create_study_set(db, StudySetCreate(
        user_id=learner.id,
        title="Cells",
        topics=["biology", "chemistry"],
        difficulty_level=3,
        flashcards=[
            FlashcardCreate(front="Powerhouse of the cell?", back="Mitochondria"),
            FlashcardCreate(front="Cell membrane made of?", back="Phospholipids"),
        ],
        mcqs=[
            MCQCreate(
                question="Which organelle holds DNA?",
                correct_answer="Nucleus",
                distractors=["Ribosome", "Golgi body", "Vacuole"],
            ),
        ],
    ), now=clock())
