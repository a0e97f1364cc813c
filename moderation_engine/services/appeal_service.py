"""
Appeal Workflow.

A report decision and the violations it issued are one decision: only
one appeal may be filed against it, by the affected user, before the
deadline. Overturning reverses the decision's own content effect and retracts
the strikes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union
from uuid import UUID

from moderation_engine.lib.clock import Clock, utcnow
from moderation_engine.lib.config import EngineSettings
from moderation_engine.lib.errors import (
    AlreadyAppealed, AlreadyDecided, DeadlineExpired, InvalidAction, InvalidTransition,
    NotAppealable, NotAuthorized, NotFound
)
from moderation_engine.lib.metrics import MetricsExporter
from moderation_engine.lib.store import ModerationStore, Transaction
from moderation_engine.models.appeal import Appeal
from moderation_engine.models.enums import (
    AppealDecision, AppealStatus, AppealTarget, CaseDecision, CaseStatus, EventType, ReportAction
)
from moderation_engine.models.events import EngineEvent
from moderation_engine.models.report import ContentReport
from moderation_engine.models.violation import UserViolation
from moderation_engine.services.case_service import CaseService
from moderation_engine.services.dispatcher import Dispatcher
from moderation_engine.services.enforcement_service import CONTENT_EFFECTS, EnforcementService

logger = logging.getLogger(__name__)

# Decisions with nothing to reverse
NON_APPEALABLE_ACTIONS = frozenset({ReportAction.NO_ACTION, ReportAction.ESCALATED_TO_LEGAL})


@dataclass
class PendingAppeal:
    target: AppealTarget
    target_id: UUID
    user_id: str
    appeal: Appeal

    def to_dict(self) -> dict:
        return {
            'target': self.target.value,
            'target_id': str(self.target_id),
            'user_id': self.user_id,
            'appeal': self.appeal.model_dump(mode='json'),
        }


class AppealService:

    def __init__(self,
                 store: ModerationStore,
                 settings: EngineSettings,
                 cases: CaseService,
                 enforcement: EnforcementService,
                 dispatcher: Dispatcher,
                 clock: Clock = utcnow):
        self.store = store
        self.settings = settings
        self.cases = cases
        self.enforcement = enforcement
        self.dispatcher = dispatcher
        self.clock = clock

    # ------------------------------------------------------------------
    # Filing
    # ------------------------------------------------------------------

    def file_appeal(self, target: Union[AppealTarget, str], target_id: UUID,
                    user_id: str, reason: str) -> Appeal:
        target = self._target(target)
        if not reason or not reason.strip():
            raise InvalidAction("An appeal reason is required")

        now = self.clock()
        with self.store.transaction() as tx:
            if target == AppealTarget.REPORT:
                record = self._load_report(tx, target_id)
                self._check_report_appeal(tx, record, user_id, now)
            else:
                record = self._load_violation(tx, target_id)
                self._check_violation_appeal(tx, record, user_id, now)

            appeal = Appeal(appellant_id=user_id, reason=reason, appealed_at=now)
            record.appeal = appeal
            record.updated_at = now
            self._put(tx, record)
            tx.emit(EngineEvent(
                user_id=user_id,
                event_type=EventType.APPEAL_FILED,
                payload={'target': target.value, 'target_id': str(target_id)},
                occurred_at=now,
            ))
            outbox = tx.outbox

        self.dispatcher.deliver(outbox)
        logger.info(f"Appeal filed by {user_id} against {target.value} {target_id}")
        return appeal

    def _check_report_appeal(self, tx: Transaction, report: ContentReport,
                             user_id: str, now: datetime) -> None:
        if user_id != report.content_owner_id:
            if user_id != report.reporter_id:
                # Strangers cannot tell an unseen report from a missing one
                raise NotFound(f"Report {report.id} not found")
            raise NotAuthorized("Only the affected user can appeal this decision")
        if report.decision is None:
            raise InvalidTransition(f"Report {report.id} has no decision to appeal",
                                    current_state={"status": report.status.value})
        linked = tx.list_violations_for_report(report.id)
        if report.appeal is not None or any(v.appeal is not None for v in linked):
            raise AlreadyAppealed(f"Decision on report {report.id} was already appealed",
                                  current_state=self._appeal_state(report.appeal))
        if now > report.decision.appeal_deadline:
            raise DeadlineExpired(
                "The appeal window for this decision has closed",
                current_state={"appeal_deadline": report.decision.appeal_deadline.isoformat()},
            )
        if report.decision.action in NON_APPEALABLE_ACTIONS or any(not v.appealable for v in linked):
            raise NotAppealable(f"Decision on report {report.id} is not appealable")

    def _check_violation_appeal(self, tx: Transaction, violation: UserViolation,
                                user_id: str, now: datetime) -> None:
        if user_id != violation.user_id:
            raise NotFound(f"Violation {violation.id} not found")
        report = tx.get_report(violation.related_report_id) if violation.related_report_id else None
        if violation.appeal is not None or (report is not None and report.appeal is not None):
            existing = violation.appeal or report.appeal
            raise AlreadyAppealed(f"Violation {violation.id} was already appealed",
                                  current_state=self._appeal_state(existing))
        if now > violation.appeal_deadline:
            raise DeadlineExpired(
                "The appeal window for this decision has closed",
                current_state={"appeal_deadline": violation.appeal_deadline.isoformat()},
            )
        if not violation.appealable:
            raise NotAppealable(f"Violation {violation.id} is not appealable")

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    @MetricsExporter.track_operation('review_appeal')
    def review_appeal(self, target: Union[AppealTarget, str], target_id: UUID, reviewer_id: str,
                      decision: Union[AppealDecision, str], notes: Optional[str] = None) -> Appeal:
        target = self._target(target)
        try:
            decision = AppealDecision(decision)
        except ValueError:
            raise InvalidAction(f"Unknown appeal decision '{decision}'")

        now = self.clock()
        with self.store.transaction() as tx:
            if target == AppealTarget.REPORT:
                record = self._load_report(tx, target_id)
            else:
                record = self._load_violation(tx, target_id)
            appeal = record.appeal
            if appeal is None:
                raise NotFound(f"No appeal filed against {target.value} {target_id}")
            if not appeal.is_open:
                raise AlreadyDecided(f"Appeal on {target.value} {target_id} was already decided",
                                     current_state=self._appeal_state(appeal))

            appeal.status = (
                AppealStatus.OVERTURNED if decision == AppealDecision.OVERTURNED else AppealStatus.UPHELD
            )
            appeal.decision = decision
            appeal.reviewer_id = reviewer_id
            appeal.notes = notes
            appeal.decided_at = now
            record.updated_at = now

            # Account standing is read before the record changes
            if decision == AppealDecision.OVERTURNED:
                if target == AppealTarget.REPORT:
                    self._overturn_tx(tx, record, tx.list_violations_for_report(record.id), reviewer_id, now)
                else:
                    report = (
                        tx.get_report(record.related_report_id, for_update=True)
                        if record.related_report_id else None
                    )
                    self._overturn_tx(tx, report, [record], reviewer_id, now)
            self._put(tx, record)

            tx.emit(EngineEvent(
                user_id=appeal.appellant_id,
                event_type=(
                    EventType.APPEAL_OVERTURNED if decision == AppealDecision.OVERTURNED
                    else EventType.APPEAL_UPHELD
                ),
                payload={'target': target.value, 'target_id': str(target_id), 'notes': notes},
                occurred_at=now,
            ))
            outbox = tx.outbox

        self.dispatcher.deliver(outbox)
        MetricsExporter.record_appeal(decision.value)
        logger.info(f"Appeal on {target.value} {target_id} {decision.value} by {reviewer_id}")
        return appeal

    def _overturn_tx(self, tx: Transaction, report: Optional[ContentReport],
                     violations: List[UserViolation], actor: str, now: datetime) -> None:
        """Reverse the decision's content effect, retract the strikes and refresh account status."""
        if report is not None and report.decision is not None:
            report.decision.overturned = True
            report.updated_at = now
            tx.put_report(report)
            if report.decision.action in CONTENT_EFFECTS:
                self._reverse_content_effect_tx(tx, report, actor, now)

        for user_id in sorted({v.user_id for v in violations}):
            tx.lock_user(user_id)
            before = self.enforcement.standing_tx(tx, user_id, now)
            for violation in violations:
                if violation.user_id == user_id and violation.overturned_at is None:
                    self.enforcement.retract_tx(tx, violation, actor, now)
            after = self.enforcement.standing_tx(tx, user_id, now)
            self.enforcement.emit_standing_change_tx(tx, before, after, now)

        if not violations and report is not None:
            tx.emit(EngineEvent(
                user_id=report.content_owner_id,
                event_type=EventType.ENFORCEMENT_REVERSED,
                payload={'report_id': str(report.id), 'reversed_by': actor},
                occurred_at=now,
            ))

    def _reverse_content_effect_tx(self, tx: Transaction, report: ContentReport,
                                   actor: str, now: datetime) -> None:
        """
        Other decisions on the same content that still stand keep their
        effect: a standing removal keeps the content removed, a standing
        warning label leaves it flagged.
        """
        case = tx.get_case(report.case_id, for_update=True)
        if case is None or case.status not in (CaseStatus.REMOVED, CaseStatus.FLAGGED):
            return

        standing = {
            CONTENT_EFFECTS[other.decision.action]
            for other in tx.list_reports_for_case(case.id)
            if other.id != report.id
            and other.decision is not None
            and not other.decision.overturned
            and other.decision.action in CONTENT_EFFECTS
        }
        if CaseDecision.REMOVED in standing:
            logger.info(f"Case {case.id} stays removed: another removal stands")
        elif CaseDecision.WARNING_ADDED in standing:
            if case.status == CaseStatus.REMOVED:
                self.cases.apply_decision_tx(
                    tx, case, CaseDecision.WARNING_ADDED, actor, "Appeal overturned", now
                )
        else:
            self.cases.restore_tx(tx, case, actor, "Appeal overturned", now)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_pending_appeals(self) -> List[PendingAppeal]:
        with self.store.transaction() as tx:
            reports = tx.list_reports_with_open_appeal()
            violations = tx.list_violations_with_open_appeal()
        pending = [
            PendingAppeal(AppealTarget.REPORT, r.id, r.appeal.appellant_id, r.appeal) for r in reports
        ] + [
            PendingAppeal(AppealTarget.VIOLATION, v.id, v.appeal.appellant_id, v.appeal) for v in violations
        ]
        pending.sort(key=lambda p: p.appeal.appealed_at)
        return pending

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _target(target: Union[AppealTarget, str]) -> AppealTarget:
        try:
            return AppealTarget(target)
        except ValueError:
            raise InvalidAction(f"Unknown appeal target '{target}'")

    @staticmethod
    def _load_report(tx: Transaction, report_id: UUID) -> ContentReport:
        report = tx.get_report(report_id, for_update=True)
        if report is None:
            raise NotFound(f"Report {report_id} not found")
        return report

    @staticmethod
    def _load_violation(tx: Transaction, violation_id: UUID) -> UserViolation:
        violation = tx.get_violation(violation_id, for_update=True)
        if violation is None:
            raise NotFound(f"Violation {violation_id} not found")
        return violation

    @staticmethod
    def _put(tx: Transaction, record: Union[ContentReport, UserViolation]) -> None:
        if isinstance(record, ContentReport):
            tx.put_report(record)
        else:
            tx.put_violation(record)

    @staticmethod
    def _appeal_state(appeal: Optional[Appeal]) -> Optional[dict]:
        if appeal is None:
            return None
        return {"status": appeal.status.value, "appealed_at": appeal.appealed_at.isoformat()}
