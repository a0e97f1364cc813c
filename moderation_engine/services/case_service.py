"""
Moderation Case manager.

One case per (content_type, content_id). A case carries the automated
score, the human decision and the content's visibility. Visibility is
`removed` exactly when status is `removed`.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple
from uuid import UUID

from moderation_engine.lib.clock import Clock, utcnow
from moderation_engine.lib.config import EngineSettings
from moderation_engine.lib.errors import (
    AlreadyDecided, Conflict, InvalidAction, InvalidTransition, NotFound, UpstreamDegraded
)
from moderation_engine.lib.metrics import MetricsExporter
from moderation_engine.lib.store import ModerationStore, Transaction
from moderation_engine.models.content import ContentRef, ContentSnapshot, ModerationCase, ScoreResult
from moderation_engine.models.enums import (
    CaseActionType, CaseDecision, CaseStatus, EventType, Recommendation, Visibility
)
from moderation_engine.models.events import EngineEvent, VisibilityInstruction
from moderation_engine.services.collaborators import ContentStoreGateway
from moderation_engine.services.dispatcher import Dispatcher
from moderation_engine.services.risk_scorer import RiskScorer

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


# decision -> (status, visibility, audit entry)
DECISION_EFFECTS: Dict[CaseDecision, Tuple[CaseStatus, Visibility, CaseActionType]] = {
    CaseDecision.APPROVED: (CaseStatus.APPROVED, Visibility.PUBLIC, CaseActionType.NO_ACTION),
    CaseDecision.REMOVED: (CaseStatus.REMOVED, Visibility.REMOVED, CaseActionType.CONTENT_REMOVED),
    CaseDecision.WARNING_ADDED: (CaseStatus.FLAGGED, Visibility.LIMITED, CaseActionType.WARNING_LABEL_ADDED),
    CaseDecision.AGE_RESTRICTED: (CaseStatus.FLAGGED, Visibility.LIMITED, CaseActionType.AGE_RESTRICTED),
    CaseDecision.REQUIRES_CONTEXT: (CaseStatus.FLAGGED, Visibility.LIMITED, CaseActionType.REACH_LIMITED),
}

ALLOWED_DECISIONS: Dict[CaseStatus, FrozenSet[CaseDecision]] = {
    CaseStatus.PENDING: frozenset(CaseDecision),
    CaseStatus.UNDER_REVIEW: frozenset(CaseDecision),
    CaseStatus.FLAGGED: frozenset({CaseDecision.REMOVED}),
    CaseStatus.APPROVED: frozenset(),
    CaseStatus.REMOVED: frozenset(),
}

MODERATE_ACTIONS = {
    'approve': CaseDecision.APPROVED,
    'remove': CaseDecision.REMOVED,
}


def _case_state(case: ModerationCase) -> dict:
    return {"status": case.status.value, "visibility": case.visibility.value}


class CaseService:

    def __init__(self,
                 store: ModerationStore,
                 settings: EngineSettings,
                 dispatcher: Dispatcher,
                 scorer: RiskScorer,
                 content_store: ContentStoreGateway,
                 clock: Clock = utcnow):
        self.store = store
        self.settings = settings
        self.dispatcher = dispatcher
        self.scorer = scorer
        self.content_store = content_store
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_case(self, case_id: UUID) -> ModerationCase:
        with self.store.transaction() as tx:
            case = tx.get_case(case_id)
        if case is None:
            raise NotFound(f"Moderation case {case_id} not found")
        return case

    def list_awaiting_review(self) -> List[ModerationCase]:
        """Cases with human review required and not yet reviewed."""
        with self.store.transaction() as tx:
            cases = tx.list_cases_awaiting_review()
        cases.sort(key=lambda c: (-(c.risk_score or 0), c.created_at))
        return cases

    # ------------------------------------------------------------------
    # Get-or-create
    # ------------------------------------------------------------------

    def ensure_case(self, ref: ContentRef, owner_id: str) -> ModerationCase:
        """Idempotent get-or-create keyed by the content reference."""
        try:
            with self.store.transaction() as tx:
                return self.ensure_case_tx(tx, ref, owner_id, self.clock())
        except Conflict:
            # Lost a create race; the winner's case is there now
            with self.store.transaction() as tx:
                case = tx.find_case(ref)
            if case is None:
                raise
            return case

    def ensure_case_tx(self, tx: Transaction, ref: ContentRef, owner_id: str,
                       now: datetime) -> ModerationCase:
        case = tx.find_case(ref, for_update=True)
        if case is not None:
            return case
        case = ModerationCase(content=ref, owner_id=owner_id, created_at=now, updated_at=now)
        tx.put_case(case)
        logger.info(f"Moderation case {case.id} opened for {ref.content_type.value}/{ref.content_id}")
        return case

    # ------------------------------------------------------------------
    # Automated scoring
    # ------------------------------------------------------------------

    def apply_automated_score(self, case_id: UUID, score: ScoreResult) -> ModerationCase:
        with self.store.transaction() as tx:
            case = tx.get_case(case_id, for_update=True)
            if case is None:
                raise NotFound(f"Moderation case {case_id} not found")
            self.apply_score_tx(tx, case, score, self.clock())
        return case

    def apply_score_tx(self, tx: Transaction, case: ModerationCase, score: ScoreResult,
                       now: datetime) -> None:
        case.automated_signals = dict(score.signals)
        case.risk_score = score.risk_score
        case.recommendation = score.recommendation
        case.scoring_degraded = score.degraded
        case.scored_at = score.scored_at

        needs_review = (
            score.recommendation in (Recommendation.REVIEW, Recommendation.REMOVE)
            or score.risk_score >= self.settings.human_review_threshold
            or score.degraded
        )
        if needs_review and case.status in (CaseStatus.PENDING, CaseStatus.UNDER_REVIEW):
            case.human_review.required = True

        case.record_action(
            CaseActionType.AUTOMATED_SCORE, SYSTEM_ACTOR,
            reason=f"risk_score={score.risk_score} recommendation={score.recommendation.value}"
                   + (" degraded" if score.degraded else ""),
            at=now,
        )
        case.updated_at = now
        tx.put_case(case)

    async def scan_content(self, ref: ContentRef, owner_id: str,
                           snapshot: Optional[ContentSnapshot] = None) -> ModerationCase:
        """Automated first scan of content nobody has reported."""
        now = self.clock()
        if snapshot is None:
            snapshot = await self.capture_snapshot(ref, now)
        score = await self.scorer.score(snapshot)
        if not snapshot.source_available:
            score = score.model_copy(update={
                'degraded': True,
                'failed_detectors': score.failed_detectors + ['content_store'],
            })

        case = await asyncio.to_thread(self._record_scan, ref, owner_id, score, now)
        logger.info(
            f"Scanned {ref.content_type.value}/{ref.content_id}: "
            f"risk={score.risk_score} recommendation={score.recommendation.value}"
        )
        return case

    def _record_scan(self, ref: ContentRef, owner_id: str, score: ScoreResult,
                     now: datetime) -> ModerationCase:
        with self.store.transaction() as tx:
            case = self.ensure_case_tx(tx, ref, owner_id, now)
            self.apply_score_tx(tx, case, score, now)
            outbox = tx.outbox
        self.dispatcher.deliver(outbox)
        return case

    async def capture_snapshot(self, ref: ContentRef, now: datetime) -> ContentSnapshot:
        """Copy the content now; an unreachable or missing item yields an empty snapshot."""
        try:
            snapshot = await self.content_store.fetch_snapshot(ref, now)
        except UpstreamDegraded as e:
            logger.warning(f"Snapshot of {ref.content_type.value}/{ref.content_id} unavailable: {e.message}")
            snapshot = None
        if snapshot is None:
            return ContentSnapshot(captured_at=now, source_available=False)
        return snapshot

    # ------------------------------------------------------------------
    # Human decisions
    # ------------------------------------------------------------------

    @MetricsExporter.track_operation('decide_case')
    def decide(self, case_id: UUID, reviewer_id: str, decision: CaseDecision,
               reason: Optional[str] = None) -> ModerationCase:
        now = self.clock()
        with self.store.transaction() as tx:
            case = tx.get_case(case_id, for_update=True)
            if case is None:
                raise NotFound(f"Moderation case {case_id} not found")
            if decision not in ALLOWED_DECISIONS[case.status]:
                if case.status in (CaseStatus.APPROVED, CaseStatus.REMOVED):
                    raise AlreadyDecided(f"Case {case_id} is already {case.status.value}",
                                         current_state=_case_state(case))
                raise InvalidTransition(
                    f"Case {case_id} cannot move from {case.status.value} via {decision.value}",
                    current_state=_case_state(case),
                )
            self.apply_decision_tx(tx, case, decision, reviewer_id, reason, now)
            outbox = tx.outbox
        self.dispatcher.deliver(outbox)
        MetricsExporter.record_case_decision(decision.value)
        logger.info(f"Case {case_id} decided {decision.value} by {reviewer_id}")
        return case

    def moderate(self, case_id: UUID, reviewer_id: str, action: str,
                 reason: Optional[str] = None) -> ModerationCase:
        """Shorthand used by the content review endpoint: approve or remove."""
        decision = MODERATE_ACTIONS.get(action)
        if decision is None:
            raise InvalidAction(f"Unknown moderation action '{action}', expected approve or remove")
        return self.decide(case_id, reviewer_id, decision, reason)

    def mark_under_review(self, case_id: UUID, reviewer_id: str) -> ModerationCase:
        now = self.clock()
        with self.store.transaction() as tx:
            case = tx.get_case(case_id, for_update=True)
            if case is None:
                raise NotFound(f"Moderation case {case_id} not found")
            if case.status not in (CaseStatus.PENDING, CaseStatus.UNDER_REVIEW):
                raise InvalidTransition(f"Case {case_id} is {case.status.value}",
                                        current_state=_case_state(case))
            case.status = CaseStatus.UNDER_REVIEW
            case.human_review.reviewer_id = reviewer_id
            case.record_action(CaseActionType.REVIEW_STARTED, reviewer_id, at=now)
            case.updated_at = now
            tx.put_case(case)
        logger.info(f"Case {case_id} claimed by {reviewer_id}")
        return case

    def apply_decision_tx(self, tx: Transaction, case: ModerationCase, decision: CaseDecision,
                          actor: str, reason: Optional[str], now: datetime) -> None:
        status, visibility, audit = DECISION_EFFECTS[decision]
        previous_visibility = case.visibility

        case.human_review.reviewed = True
        case.human_review.reviewer_id = actor
        case.human_review.reviewed_at = now
        case.human_review.decision = decision
        case.human_review.reason = reason
        case.status = status
        case.visibility = visibility
        if decision == CaseDecision.AGE_RESTRICTED:
            case.age_restricted = True
        case.record_action(audit, actor, reason=reason, at=now)
        case.updated_at = now
        tx.put_case(case)

        if visibility != previous_visibility:
            tx.emit(VisibilityInstruction(
                content_type=case.content.content_type,
                content_id=case.content.content_id,
                visibility=visibility,
            ))
        tx.emit(EngineEvent(
            user_id=case.owner_id,
            event_type=EventType.CONTENT_DECIDED,
            payload={
                'case_id': str(case.id),
                'decision': decision.value,
                'visibility': visibility.value,
                'reason': reason,
            },
            occurred_at=now,
        ))

    def apply_report_effect_tx(self, tx: Transaction, case: ModerationCase, decision: CaseDecision,
                               actor: str, reason: Optional[str], now: datetime) -> bool:
        """
        Content effect of a resolved report. Removed content stays removed and
        an existing warning label is not re-applied. Unlike ``decide``, this
        path may act on an approved case: approval closes direct case review,
        not later reports against the same content. Returns True when applied.
        """
        if case.status == CaseStatus.REMOVED:
            return False
        if decision == CaseDecision.WARNING_ADDED and case.status == CaseStatus.FLAGGED:
            return False
        self.apply_decision_tx(tx, case, decision, actor, reason, now)
        return True

    def restore_tx(self, tx: Transaction, case: ModerationCase, actor: str,
                   reason: Optional[str], now: datetime) -> None:
        """Appeal reversal: the only path from removed back to public."""
        case.status = CaseStatus.APPROVED
        case.visibility = Visibility.PUBLIC
        case.age_restricted = False
        case.record_action(CaseActionType.CONTENT_RESTORED, actor, reason=reason, at=now)
        case.updated_at = now
        tx.put_case(case)
        tx.emit(VisibilityInstruction(
            content_type=case.content.content_type,
            content_id=case.content.content_id,
            visibility=Visibility.PUBLIC,
        ))
        logger.info(f"Case {case.id} restored to public by {actor}")
