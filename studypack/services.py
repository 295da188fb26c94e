import random
from typing import Dict, Optional

from studypack.clock import Clock, utcnow
from studypack.config import Settings, get_settings
from studypack.database import init_db, make_engine, make_session_factory
from studypack.jobs import ScheduledJobs
from studypack.notifications import Channel, DatabaseNotificationSink
from studypack.orchestrator import SchedulerOrchestrator
from studypack.reviews import ResponseRecorder
from studypack.stats import StatsService
from studypack.stores import SqlContentStore, SqlResponseLog, SqlTopicPerformanceStore


class Services:
    """Everything wired against one database; built explicitly, never at import"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        channels: Optional[Dict[str, Channel]] = None,
        rng: Optional[random.Random] = None,
        clock: Clock = utcnow,
    ):
        self.settings = settings or get_settings()
        tz = self.settings.scheduler_timezone

        self.engine = make_engine(self.settings.database_url)
        self.session_factory = make_session_factory(self.engine)

        self.content_store = SqlContentStore(self.session_factory, timezone=tz, clock=clock)
        self.response_log = SqlResponseLog(self.session_factory)
        self.topic_store = SqlTopicPerformanceStore(self.session_factory)
        self.notification_sink = DatabaseNotificationSink(self.session_factory, channels=channels, clock=clock)
        self.stats = StatsService(self.session_factory, timezone=tz, clock=clock)

        self.orchestrator = SchedulerOrchestrator(
            self.content_store,
            self.response_log,
            self.topic_store,
            self.notification_sink,
            settings=self.settings,
            rng=rng,
            clock=clock,
            stats_provider=self.stats,
        )
        self.tracker = self.orchestrator.tracker
        self.recorder = ResponseRecorder(self.session_factory, self.tracker, clock=clock)
        self.jobs = ScheduledJobs(self.orchestrator, self.settings)

    def init_db(self) -> None:
        init_db(self.engine)

    def close(self) -> None:
        self.jobs.stop(wait=False)
        self.orchestrator.shutdown()
        self.engine.dispose()
