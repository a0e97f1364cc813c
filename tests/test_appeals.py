from uuid import uuid4

import pytest

from moderation_engine.lib.errors import (
    AlreadyAppealed, AlreadyDecided, Conflict, DeadlineExpired, InvalidAction,
    InvalidTransition, NotAppealable, NotAuthorized, NotFound
)
from moderation_engine.models.enums import (
    AccountStatus, AppealDecision, AppealStatus, AppealTarget, CaseStatus, EventType,
    ReportAction, ReportReason, Visibility
)


def _violation(submit_report, resolve, action=ReportAction.USER_WARNED, **kwargs):
    report = submit_report(**kwargs)
    return report, resolve(report, action).violation


def test_owner_files_violation_appeal(engine, submit_report, resolve, notifications):
    _, violation = _violation(submit_report, resolve)

    appeal = engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", "It was a joke")

    assert appeal.status == AppealStatus.PENDING
    assert engine.enforcement.get_violation(violation.id).appeal is not None
    assert notifications.of_type(EventType.APPEAL_FILED)


def test_only_affected_user_may_appeal(engine, submit_report, resolve):
    report, _ = _violation(submit_report, resolve)

    with pytest.raises(NotAuthorized):
        engine.appeals.file_appeal(AppealTarget.REPORT, report.id, "reporter-1", "please")


def test_strangers_see_not_found(engine, submit_report, resolve):
    report, violation = _violation(submit_report, resolve)

    with pytest.raises(NotFound) as unseen:
        engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "reporter-1", "please")
    assert unseen.value.message == f"Violation {violation.id} not found"
    with pytest.raises(NotFound) as unseen:
        engine.appeals.file_appeal(AppealTarget.REPORT, report.id, "stranger", "please")
    assert unseen.value.message == f"Report {report.id} not found"


def test_second_appeal_is_a_conflict(engine, submit_report, resolve):
    report, violation = _violation(submit_report, resolve)
    engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", "first")

    with pytest.raises(AlreadyAppealed) as exc:
        engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", "second")
    assert isinstance(exc.value, Conflict)
    assert exc.value.current_state["status"] == "pending"

    # Same decision, other entry point
    with pytest.raises(AlreadyAppealed):
        engine.appeals.file_appeal(AppealTarget.REPORT, report.id, "owner-1", "third")


def test_report_appeal_blocks_violation_appeal(engine, submit_report, resolve):
    report, violation = _violation(submit_report, resolve)
    engine.appeals.file_appeal(AppealTarget.REPORT, report.id, "owner-1", "first")

    with pytest.raises(AlreadyAppealed):
        engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", "second")


def test_appeal_after_deadline(engine, submit_report, resolve, clock):
    _, violation = _violation(submit_report, resolve)
    clock.advance(days=31)

    with pytest.raises(DeadlineExpired) as exc:
        engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", "late")
    assert isinstance(exc.value, InvalidTransition)


def test_appeal_on_deadline_day_is_accepted(engine, submit_report, resolve, clock):
    _, violation = _violation(submit_report, resolve)
    clock.advance(days=30)
    appeal = engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", "just in time")
    assert appeal.is_open


def test_undecided_report_cannot_be_appealed(engine, submit_report):
    report = submit_report()
    with pytest.raises(InvalidTransition):
        engine.appeals.file_appeal(AppealTarget.REPORT, report.id, "owner-1", "why")


def test_non_appealable_ladder_tier(engine, submit_report, resolve):
    report, violation = _violation(
        submit_report, resolve, action=ReportAction.USER_BANNED, reason=ReportReason.CHILD_SAFETY
    )
    assert not violation.appealable

    with pytest.raises(NotAppealable):
        engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", "please")
    with pytest.raises(NotAppealable):
        engine.appeals.file_appeal(AppealTarget.REPORT, report.id, "owner-1", "please")


def test_no_action_decision_is_not_appealable(engine, submit_report, resolve):
    report = submit_report()
    resolve(report, ReportAction.NO_ACTION)
    with pytest.raises(NotAppealable):
        engine.appeals.file_appeal(AppealTarget.REPORT, report.id, "owner-1", "nothing to appeal")


def test_appeal_requires_reason(engine, submit_report, resolve):
    _, violation = _violation(submit_report, resolve)
    with pytest.raises(InvalidAction):
        engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", " ")


def test_unknown_target(engine):
    with pytest.raises(NotFound):
        engine.appeals.file_appeal(AppealTarget.VIOLATION, uuid4(), "owner-1", "reason")
    with pytest.raises(InvalidAction):
        engine.appeals.file_appeal("comment", uuid4(), "owner-1", "reason")


def test_overturn_restores_content_and_retracts_strike(engine, submit_report, resolve,
                                                      content_store, notifications):
    report, violation = _violation(submit_report, resolve, action=ReportAction.CONTENT_REMOVED)
    assert content_store.visibility[("post", "post-1")] == Visibility.REMOVED
    engine.appeals.file_appeal(AppealTarget.REPORT, report.id, "owner-1", "Taken out of context")

    appeal = engine.appeals.review_appeal(
        AppealTarget.REPORT, report.id, "mod-2", AppealDecision.OVERTURNED, "Satire"
    )

    assert appeal.status == AppealStatus.OVERTURNED
    case = engine.cases.get_case(report.case_id)
    assert case.status == CaseStatus.APPROVED
    assert case.visibility == Visibility.PUBLIC
    assert content_store.visibility[("post", "post-1")] == Visibility.PUBLIC

    retracted = engine.enforcement.get_violation(violation.id)
    assert retracted.overturned
    assert not retracted.action.is_active
    assert engine.enforcement.rolling_strike_count("owner-1") == 0
    assert engine.intake.get_report(report.id).decision.overturned
    assert notifications.of_type(EventType.ENFORCEMENT_REVERSED)
    assert notifications.of_type(EventType.APPEAL_OVERTURNED)


def test_overturned_suspension_reinstates_account(engine, submit_report, resolve, identity):
    _, violation = _violation(submit_report, resolve, action=ReportAction.USER_SUSPENDED)
    assert identity.latest("owner-1").status == AccountStatus.SUSPENDED

    engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", "Wrong account")
    engine.appeals.review_appeal(AppealTarget.VIOLATION, violation.id, "mod-2", AppealDecision.OVERTURNED)

    assert engine.enforcement.account_standing("owner-1").status == AccountStatus.ACTIVE
    assert identity.latest("owner-1").status == AccountStatus.ACTIVE


def test_overturn_keeps_later_tiers_as_issued(engine, submit_report, resolve):
    _, first = _violation(submit_report, resolve, content_id="post-a")
    _, second = _violation(submit_report, resolve, content_id="post-b")
    assert second.rolling_strikes == 2

    engine.appeals.file_appeal(AppealTarget.VIOLATION, first.id, "owner-1", "Mistake")
    engine.appeals.review_appeal(AppealTarget.VIOLATION, first.id, "mod-2", AppealDecision.OVERTURNED)

    assert engine.enforcement.get_violation(second.id).rolling_strikes == 2
    assert engine.enforcement.rolling_strike_count("owner-1") == 1

    _, third = _violation(submit_report, resolve, content_id="post-c")
    assert third.ladder_tier == 2


def test_upheld_appeal_changes_nothing(engine, submit_report, resolve, notifications):
    report, violation = _violation(submit_report, resolve, action=ReportAction.CONTENT_REMOVED)
    engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", "Please")

    appeal = engine.appeals.review_appeal(AppealTarget.VIOLATION, violation.id, "mod-2", "upheld")

    assert appeal.status == AppealStatus.UPHELD
    assert engine.enforcement.get_violation(violation.id).action.is_active
    assert engine.cases.get_case(report.case_id).status == CaseStatus.REMOVED
    assert notifications.of_type(EventType.APPEAL_UPHELD)


def test_appeal_review_is_final(engine, submit_report, resolve):
    _, violation = _violation(submit_report, resolve)
    engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", "Please")
    engine.appeals.review_appeal(AppealTarget.VIOLATION, violation.id, "mod-2", AppealDecision.UPHELD)

    with pytest.raises(AlreadyDecided):
        engine.appeals.review_appeal(AppealTarget.VIOLATION, violation.id, "mod-3", AppealDecision.OVERTURNED)


def test_review_without_appeal(engine, submit_report, resolve):
    _, violation = _violation(submit_report, resolve)
    with pytest.raises(NotFound):
        engine.appeals.review_appeal(AppealTarget.VIOLATION, violation.id, "mod-2", AppealDecision.UPHELD)
    with pytest.raises(InvalidAction):
        engine.appeals.review_appeal(AppealTarget.VIOLATION, violation.id, "mod-2", "maybe")


def test_overturning_content_only_decision(engine, submit_report, resolve, content_store):
    report = submit_report()
    resolve(report, ReportAction.CONTENT_WARNING_ADDED)
    engine.appeals.file_appeal(AppealTarget.REPORT, report.id, "owner-1", "Not graphic")

    engine.appeals.review_appeal(AppealTarget.REPORT, report.id, "mod-2", AppealDecision.OVERTURNED)

    case = engine.cases.get_case(report.case_id)
    assert case.status == CaseStatus.APPROVED
    assert case.visibility == Visibility.PUBLIC


def test_overturned_warning_keeps_upheld_removal(engine, submit_report, resolve, content_store):
    removal, removal_violation = _violation(submit_report, resolve, action=ReportAction.CONTENT_REMOVED)
    engine.appeals.file_appeal(AppealTarget.VIOLATION, removal_violation.id, "owner-1", "Please")
    engine.appeals.review_appeal(AppealTarget.VIOLATION, removal_violation.id, "mod-2", AppealDecision.UPHELD)

    _, warning = _violation(submit_report, resolve, reporter="reporter-2")
    engine.appeals.file_appeal(AppealTarget.VIOLATION, warning.id, "owner-1", "Not me")
    engine.appeals.review_appeal(AppealTarget.VIOLATION, warning.id, "mod-2", AppealDecision.OVERTURNED)

    case = engine.cases.get_case(removal.case_id)
    assert case.status == CaseStatus.REMOVED
    assert case.visibility == Visibility.REMOVED
    assert content_store.visibility[("post", "post-1")] == Visibility.REMOVED
    assert engine.enforcement.get_violation(warning.id).overturned
    assert not engine.enforcement.get_violation(removal_violation.id).overturned


def test_overturned_removal_leaves_standing_warning_label(engine, submit_report, resolve):
    removal = submit_report()
    resolve(removal, ReportAction.CONTENT_REMOVED)
    resolve(submit_report(reporter="reporter-2"), ReportAction.CONTENT_WARNING_ADDED)

    engine.appeals.file_appeal(AppealTarget.REPORT, removal.id, "owner-1", "Satire")
    engine.appeals.review_appeal(AppealTarget.REPORT, removal.id, "mod-2", AppealDecision.OVERTURNED)

    case = engine.cases.get_case(removal.case_id)
    assert case.status == CaseStatus.FLAGGED
    assert case.visibility == Visibility.LIMITED


def test_pending_appeals_listing(engine, submit_report, resolve, clock):
    report, _ = _violation(submit_report, resolve, content_id="post-a")
    _, violation = _violation(submit_report, resolve, content_id="post-b")

    engine.appeals.file_appeal(AppealTarget.REPORT, report.id, "owner-1", "first")
    clock.advance(minutes=1)
    engine.appeals.file_appeal(AppealTarget.VIOLATION, violation.id, "owner-1", "second")

    pending = engine.appeals.list_pending_appeals()
    assert [(p.target, p.target_id) for p in pending] == [
        (AppealTarget.REPORT, report.id), (AppealTarget.VIOLATION, violation.id),
    ]

    engine.appeals.review_appeal(AppealTarget.REPORT, report.id, "mod-2", AppealDecision.UPHELD)
    assert len(engine.appeals.list_pending_appeals()) == 1
