from datetime import datetime, timezone

import pytest

from moderation_engine.lib.errors import Conflict, DuplicateVersion, NotFound
from moderation_engine.models.enums import LadderStep, ReportReason, Severity
from moderation_engine.models.guideline_defaults import default_guidelines
from moderation_engine.models.guidelines import GuidelineCategory, GuidelineVersion, LadderTier
from moderation_engine.services.guideline_registry import GuidelineRegistry


def _version(version, ladder_step=LadderStep.WARNING):
    return GuidelineVersion(
        version=version,
        effective_date=datetime(2024, 6, 1, tzinfo=timezone.utc),
        categories=(
            GuidelineCategory(
                name=ReportReason.SPAM,
                title="Spam",
                severity_default=Severity.LOW,
                ladder=(LadderTier(tier=1, action=ladder_step),),
            ),
            GuidelineCategory(
                name=ReportReason.OTHER,
                title="Other",
                severity_default=Severity.LOW,
                ladder=(LadderTier(tier=1, action=LadderStep.WARNING),),
            ),
        ),
    )


def test_engine_seeds_default_version(engine):
    active = engine.registry.get_active_version()
    assert active.version == default_guidelines().version
    assert active.is_active
    assert active.published_at is not None


def test_seeding_is_idempotent(engine):
    again = engine.registry.ensure_seeded()
    assert again.version == "1.0.0"
    assert len(engine.registry.list_versions()) == 1


def test_publish_activates_and_deactivates_prior(engine):
    published = engine.registry.publish(_version("2.0.0"))

    assert published.is_active
    assert engine.registry.get_active_version().version == "2.0.0"
    assert not engine.registry.get_version("1.0.0").is_active
    assert [g.version for g in engine.registry.list_versions() if g.is_active] == ["2.0.0"]


def test_publish_without_activation_keeps_current(engine):
    engine.registry.publish(_version("2.0.0"), activate=False)
    assert engine.registry.get_active_version().version == "1.0.0"

    engine.registry.activate("2.0.0")
    assert engine.registry.get_active_version().version == "2.0.0"


def test_duplicate_version_rejected(engine):
    with pytest.raises(DuplicateVersion) as exc:
        engine.registry.publish(_version("1.0.0"))
    assert isinstance(exc.value, Conflict)
    # The stored document is unchanged
    assert engine.registry.get_active_version().category(ReportReason.TERRORISM) is not None


def test_unknown_version(engine):
    with pytest.raises(NotFound):
        engine.registry.get_version("9.9.9")
    with pytest.raises(NotFound):
        engine.registry.activate("9.9.9")


def test_cache_reloads_when_another_registry_publishes(engine, store, clock):
    assert engine.registry.get_active_version().version == "1.0.0"

    other = GuidelineRegistry(store, clock)
    other.publish(_version("2.0.0", ladder_step=LadderStep.PERMANENT_BAN))

    active = engine.registry.get_active_version()
    assert active.version == "2.0.0"
    assert engine.registry.ladder_for(ReportReason.SPAM)[0].action == LadderStep.PERMANENT_BAN


def test_uncovered_category_falls_back_to_other(engine):
    engine.registry.publish(_version("2.0.0"))
    ladder = engine.registry.ladder_for(ReportReason.HATE_SPEECH)
    assert [t.action for t in ladder] == [LadderStep.WARNING]


def test_severity_lookup(engine):
    assert engine.registry.severity_of(ReportReason.CHILD_SAFETY) == Severity.CRITICAL
    assert engine.registry.severity_of(ReportReason.SPAM) == Severity.MEDIUM


def test_ladder_must_be_numbered_from_one():
    with pytest.raises(ValueError):
        GuidelineCategory(
            name=ReportReason.SPAM,
            title="Spam",
            severity_default=Severity.LOW,
            ladder=(LadderTier(tier=2, action=LadderStep.WARNING),),
        )
