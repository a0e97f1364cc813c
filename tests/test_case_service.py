from uuid import uuid4

import pytest

from moderation_engine.lib.errors import (
    AlreadyDecided, Conflict, InvalidAction, InvalidTransition, NotFound
)
from moderation_engine.models.content import ContentRef, ContentSnapshot, ScoreResult
from moderation_engine.models.enums import (
    CaseActionType, CaseDecision, CaseStatus, ContentType, EventType, Recommendation, Visibility
)


@pytest.fixture
def ref():
    return ContentRef(content_type=ContentType.POST, content_id="post-42")


@pytest.fixture
def case(engine, ref):
    return engine.cases.ensure_case(ref, "owner-1")


def test_ensure_case_is_idempotent(engine, ref, case):
    again = engine.cases.ensure_case(ref, "owner-1")
    assert again.id == case.id
    assert again.status == CaseStatus.PENDING
    assert again.visibility == Visibility.PUBLIC


def test_cases_are_keyed_by_type_and_id(engine, ref, case):
    comment = engine.cases.ensure_case(ContentRef(content_type=ContentType.COMMENT, content_id="post-42"), "owner-1")
    assert comment.id != case.id


def test_high_risk_score_requires_human_review(engine, case, clock):
    score = ScoreResult(signals={'violence': 0.9}, risk_score=90,
                        recommendation=Recommendation.REMOVE, scored_at=clock())
    updated = engine.cases.apply_automated_score(case.id, score)

    assert updated.risk_score == 90
    assert updated.human_review.required
    assert updated.awaiting_review
    assert updated.actions_taken[-1].action == CaseActionType.AUTOMATED_SCORE
    assert [c.id for c in engine.cases.list_awaiting_review()] == [case.id]


def test_low_risk_score_does_not_require_review(engine, case, clock):
    score = ScoreResult(signals={'toxicity': 0.1}, risk_score=10,
                        recommendation=Recommendation.APPROVE, scored_at=clock())
    updated = engine.cases.apply_automated_score(case.id, score)
    assert not updated.human_review.required
    assert engine.cases.list_awaiting_review() == []


def test_degraded_score_requires_review(engine, case, clock):
    score = ScoreResult(risk_score=0, degraded=True, failed_detectors=['toxicity'], scored_at=clock())
    updated = engine.cases.apply_automated_score(case.id, score)
    assert updated.scoring_degraded
    assert updated.human_review.required


def test_remove_hides_content_and_audits(engine, case, content_store, notifications):
    removed = engine.cases.decide(case.id, "mod-1", CaseDecision.REMOVED, "Graphic violence")

    assert removed.status == CaseStatus.REMOVED
    assert removed.visibility == Visibility.REMOVED
    assert removed.human_review.reviewed
    assert removed.actions_taken[-1].action == CaseActionType.CONTENT_REMOVED
    assert content_store.visibility[("post", "post-42")] == Visibility.REMOVED
    assert notifications.of_type(EventType.CONTENT_DECIDED)


def test_terminal_case_rejects_further_decisions(engine, case):
    engine.cases.decide(case.id, "mod-1", CaseDecision.APPROVED)

    with pytest.raises(AlreadyDecided) as exc:
        engine.cases.decide(case.id, "mod-2", CaseDecision.REMOVED)
    assert isinstance(exc.value, Conflict)
    assert exc.value.current_state["status"] == "approved"


def test_flagged_content_can_still_be_removed(engine, case):
    flagged = engine.cases.decide(case.id, "mod-1", CaseDecision.WARNING_ADDED)
    assert flagged.status == CaseStatus.FLAGGED
    assert flagged.visibility == Visibility.LIMITED

    removed = engine.cases.decide(case.id, "mod-2", CaseDecision.REMOVED)
    assert removed.status == CaseStatus.REMOVED

    with pytest.raises(AlreadyDecided):
        engine.cases.decide(case.id, "mod-2", CaseDecision.APPROVED)


def test_flagged_content_cannot_be_approved(engine, case):
    engine.cases.decide(case.id, "mod-1", CaseDecision.AGE_RESTRICTED)
    with pytest.raises(InvalidTransition):
        engine.cases.decide(case.id, "mod-2", CaseDecision.APPROVED)


def test_requires_context_limits_reach(engine, case):
    decided = engine.cases.decide(case.id, "mod-1", CaseDecision.REQUIRES_CONTEXT, "Missing context")
    assert decided.status == CaseStatus.FLAGGED
    assert decided.visibility == Visibility.LIMITED
    assert decided.actions_taken[-1].action == CaseActionType.REACH_LIMITED


def test_age_restriction_sets_flag(engine, case):
    decided = engine.cases.decide(case.id, "mod-1", CaseDecision.AGE_RESTRICTED)
    assert decided.age_restricted


def test_claim_then_decide(engine, case):
    claimed = engine.cases.mark_under_review(case.id, "mod-1")
    assert claimed.status == CaseStatus.UNDER_REVIEW
    assert claimed.actions_taken[-1].action == CaseActionType.REVIEW_STARTED

    approved = engine.cases.decide(case.id, "mod-1", CaseDecision.APPROVED)
    assert approved.status == CaseStatus.APPROVED

    with pytest.raises(InvalidTransition):
        engine.cases.mark_under_review(case.id, "mod-2")


def test_moderate_shorthand(engine, case):
    removed = engine.cases.moderate(case.id, "mod-1", "remove", "Spam")
    assert removed.status == CaseStatus.REMOVED

    with pytest.raises(InvalidAction):
        engine.cases.moderate(case.id, "mod-1", "shadowban")


def test_unknown_case(engine):
    with pytest.raises(NotFound):
        engine.cases.get_case(uuid4())
    with pytest.raises(NotFound):
        engine.cases.decide(uuid4(), "mod-1", CaseDecision.REMOVED)


@pytest.mark.asyncio
async def test_scan_content_opens_and_scores_case(engine, ref):
    snapshot = ContentSnapshot(text="I will attack you, kill you and bomb your house")
    case = await engine.cases.scan_content(ref, "owner-1", snapshot=snapshot)

    assert case.risk_score == 90
    assert case.recommendation == Recommendation.REMOVE
    assert case.human_review.required
    assert case.status == CaseStatus.PENDING


@pytest.mark.asyncio
async def test_scan_of_missing_content_is_degraded(engine, ref):
    case = await engine.cases.scan_content(ref, "owner-1")
    assert case.scoring_degraded
    assert case.human_review.required
