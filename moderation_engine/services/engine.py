"""
ModerationEngine - wires the store, collaborators and services together.
"""

import logging
from typing import Optional, Sequence

from moderation_engine.lib.clock import Clock, utcnow
from moderation_engine.lib.config import EngineSettings
from moderation_engine.lib.database import DatabaseConnection
from moderation_engine.lib.kafka_client import MessageBroker
from moderation_engine.lib.memory_store import InMemoryStore
from moderation_engine.lib.postgres_store import PostgresStore
from moderation_engine.lib.store import ModerationStore
from moderation_engine.services.appeal_service import AppealService
from moderation_engine.services.case_service import CaseService
from moderation_engine.services.collaborators import (
    ContentStoreGateway, HttpContentStore, IdentityGateway, InMemoryContentStore,
    KafkaIdentityGateway, KafkaNotificationSink, NotificationSink,
    RecordingIdentityGateway, RecordingNotificationSink
)
from moderation_engine.services.dispatcher import Dispatcher
from moderation_engine.services.enforcement_service import EnforcementService, SweepResult
from moderation_engine.services.guideline_registry import GuidelineRegistry
from moderation_engine.services.report_intake import ReportIntake
from moderation_engine.services.review_queue import ReviewQueue
from moderation_engine.services.risk_scorer import Detector, RiskScorer

logger = logging.getLogger(__name__)


class ModerationEngine:
    """Holds one instance of every component, sharing store, clock and dispatcher."""

    def __init__(self,
                 settings: EngineSettings,
                 store: ModerationStore,
                 content_store: ContentStoreGateway,
                 identity: IdentityGateway,
                 notifications: NotificationSink,
                 dead_letters=None,
                 detectors: Optional[Sequence[Detector]] = None,
                 clock: Clock = utcnow,
                 broker: Optional[MessageBroker] = None,
                 db=None):
        self.settings = settings
        self.store = store
        self.clock = clock
        self.broker = broker
        self.db = db

        self.content_store = content_store
        self.identity = identity
        self.notifications = notifications
        self.dispatcher = Dispatcher(content_store, identity, notifications, dead_letters)

        self.registry = GuidelineRegistry(store, clock)
        self.scorer = RiskScorer(settings, detectors, clock)
        self.cases = CaseService(store, settings, self.dispatcher, self.scorer, content_store, clock)
        self.intake = ReportIntake(store, settings, self.cases, self.dispatcher, clock)
        self.queue = ReviewQueue(store)
        self.enforcement = EnforcementService(store, settings, self.registry, self.cases, self.dispatcher, clock)
        self.appeals = AppealService(store, settings, self.cases, self.enforcement, self.dispatcher, clock)

    def sweep_expired(self, now=None) -> SweepResult:
        return self.enforcement.expire_due(now)

    def health(self) -> dict:
        with self.store.transaction() as tx:
            active = tx.get_active_guideline_id()
        return {
            'status': 'ok' if active else 'degraded',
            'store': type(self.store).__name__,
            'guideline_version': active,
        }

    def close(self) -> None:
        if self.broker is not None:
            self.broker.close()
        if self.db is not None:
            self.db.close()


def build_engine(settings: Optional[EngineSettings] = None,
                 store: Optional[ModerationStore] = None,
                 content_store: Optional[ContentStoreGateway] = None,
                 identity: Optional[IdentityGateway] = None,
                 notifications: Optional[NotificationSink] = None,
                 dead_letters=None,
                 detectors: Optional[Sequence[Detector]] = None,
                 clock: Clock = utcnow,
                 seed: bool = True) -> ModerationEngine:
    """
    Build an engine from settings. Postgres, Kafka and the HTTP content
    store are used when configured; otherwise in-process stand-ins.
    """
    settings = settings or EngineSettings()
    db = None
    broker = None

    if store is None:
        if settings.database_url:
            db = DatabaseConnection(settings.database_url)
            db.init_schema()
            store = PostgresStore(db)
        else:
            store = InMemoryStore()

    if settings.kafka_bootstrap_servers:
        broker = MessageBroker(settings.kafka_bootstrap_servers)
        identity = identity or KafkaIdentityGateway(broker)
        notifications = notifications or KafkaNotificationSink(broker)
        dead_letters = dead_letters or broker

    if content_store is None:
        if settings.content_store_url:
            content_store = HttpContentStore(settings.content_store_url)
        else:
            content_store = InMemoryContentStore()

    engine = ModerationEngine(
        settings=settings,
        store=store,
        content_store=content_store,
        identity=identity or RecordingIdentityGateway(),
        notifications=notifications or RecordingNotificationSink(),
        dead_letters=dead_letters,
        detectors=detectors,
        clock=clock,
        broker=broker,
        db=db,
    )
    if seed:
        engine.registry.ensure_seeded()
    logger.info(f"Moderation engine ready ({type(store).__name__})")
    return engine
