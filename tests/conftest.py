import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from moderation_engine.lib.config import EngineSettings
from moderation_engine.lib.memory_store import InMemoryStore
from moderation_engine.models.content import ContentRef
from moderation_engine.models.enums import ContentType, ReportReason
from moderation_engine.models.report import ReportSubmission
from moderation_engine.services.collaborators import (
    InMemoryContentStore, InMemoryDeadLetters, RecordingIdentityGateway, RecordingNotificationSink
)
from moderation_engine.services.engine import build_engine


START = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class ManualClock:
    """Test clock; only moves when told to."""

    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def content_store():
    return InMemoryContentStore()


@pytest.fixture
def identity():
    return RecordingIdentityGateway()


@pytest.fixture
def notifications():
    return RecordingNotificationSink()


@pytest.fixture
def dead_letters():
    return InMemoryDeadLetters()


@pytest.fixture
def engine(settings, store, content_store, identity, notifications, dead_letters, clock):
    return build_engine(
        settings,
        store=store,
        content_store=content_store,
        identity=identity,
        notifications=notifications,
        dead_letters=dead_letters,
        clock=clock,
    )


def make_submission(content_id="post-1", owner="owner-1", reason=ReportReason.HARASSMENT_BULLYING,
                    priority=None, description=None, content_type=ContentType.POST):
    return ReportSubmission(
        content=ContentRef(content_type=content_type, content_id=content_id),
        content_owner_id=owner,
        reason=reason,
        description=description,
        priority=priority,
    )


@pytest.fixture
def submit_report(engine, content_store):
    """Synchronous report helper for tests that don't run an event loop."""

    def _submit(reporter="reporter-1", content_id="post-1", owner="owner-1",
                reason=ReportReason.HARASSMENT_BULLYING, priority=None,
                text="you are such an idiot", description=None):
        submission = make_submission(content_id, owner, reason, priority, description)
        if text is not None and submission.content.key not in content_store.items:
            content_store.put(submission.content, text=text)
        return asyncio.run(engine.intake.submit(reporter, submission))

    return _submit


@pytest.fixture
def resolve(engine):
    """Submit-and-resolve helper returning the Resolution."""

    def _resolve(report, action, reviewer="mod-1", reason="Violates community standards"):
        return engine.enforcement.resolve(report.id, reviewer, action, reason)

    return _resolve
