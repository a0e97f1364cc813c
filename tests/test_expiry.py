from moderation_engine.models.enums import AccountStatus, EventType, ReportAction
from moderation_engine.services.expiry_sweeper import ExpirySweeper


class OneShotEvent:
    """Stop event that trips after the first wait."""

    def __init__(self):
        self.waits = 0

    def is_set(self):
        return self.waits > 0

    def wait(self, timeout=None):
        self.waits += 1
        return True


def test_suspension_lapses_lazily_then_sweep_reinstates(engine, submit_report, resolve, identity, clock):
    violation = resolve(submit_report(), ReportAction.USER_SUSPENDED).violation

    clock.advance(days=31)
    # Reads never report an expired sanction, even before the sweep
    assert engine.enforcement.account_standing("owner-1").status == AccountStatus.ACTIVE
    assert identity.latest("owner-1").status == AccountStatus.SUSPENDED

    result = engine.sweep_expired()

    assert violation.id in result.deactivated
    assert result.reinstated_users == ["owner-1"]
    assert identity.latest("owner-1").status == AccountStatus.ACTIVE
    # Still counts as a strike until the window closes
    assert engine.enforcement.rolling_strike_count("owner-1") == 1


def test_sweep_is_idempotent(engine, submit_report, resolve, identity, clock):
    resolve(submit_report(), ReportAction.USER_SUSPENDED)
    clock.advance(days=31)
    engine.sweep_expired()
    sent = len(identity.instructions)

    again = engine.sweep_expired()

    assert again.expired == [] and again.deactivated == [] and again.reinstated_users == []
    assert len(identity.instructions) == sent


def test_violation_expires_after_window(engine, submit_report, resolve, notifications, clock):
    violation = resolve(submit_report(), ReportAction.USER_WARNED).violation

    clock.advance(days=89)
    assert engine.sweep_expired().expired == []

    clock.advance(days=1)
    result = engine.sweep_expired()

    assert result.expired == [violation.id]
    stored = engine.enforcement.get_violation(violation.id)
    assert stored.is_expired
    assert not stored.action.is_active
    assert notifications.of_type(EventType.VIOLATION_EXPIRED)


def test_reads_present_past_due_violations_as_expired(engine, submit_report, resolve, clock):
    violation = resolve(submit_report(), ReportAction.USER_WARNED).violation
    clock.advance(days=91)

    assert engine.enforcement.get_violation(violation.id).is_expired
    history = engine.enforcement.violation_history("owner-1")
    assert history.violations[0].is_expired
    assert history.rolling_strikes == 0
    # Persisted flag untouched until the sweep
    with engine.store.transaction() as tx:
        assert not tx.get_violation(violation.id).is_expired


def test_ban_never_expires(engine, submit_report, resolve, clock):
    resolve(submit_report(), ReportAction.USER_BANNED)
    clock.advance(days=400)

    result = engine.sweep_expired()

    assert result.expired == []
    assert engine.enforcement.account_standing("owner-1").status == AccountStatus.BANNED


def test_overlapping_suspensions_reinstate_after_the_last(engine, submit_report, resolve, identity, clock):
    resolve(submit_report(content_id="post-a"), ReportAction.USER_SUSPENDED)
    clock.advance(days=20)
    resolve(submit_report(content_id="post-b"), ReportAction.USER_SUSPENDED)

    clock.advance(days=11)
    first_pass = engine.sweep_expired()
    assert first_pass.reinstated_users == []
    assert engine.enforcement.account_standing("owner-1").status == AccountStatus.SUSPENDED

    clock.advance(days=20)
    second_pass = engine.sweep_expired()
    assert second_pass.reinstated_users == ["owner-1"]
    assert identity.latest("owner-1").status == AccountStatus.ACTIVE


def test_sweeper_loop(engine, submit_report, resolve, clock):
    resolve(submit_report(), ReportAction.USER_WARNED)
    clock.advance(days=90)
    sweeper = ExpirySweeper(engine.enforcement, interval_seconds=1)

    stop = OneShotEvent()
    sweeper.run_forever(stop)

    assert stop.waits == 1
    assert sweeper.run_once().expired == []
