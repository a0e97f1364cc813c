"""
Enforcement Ladder - turns resolved reports into strikes.

The rolling strike count is derived on every read from the user's
violation log (trailing window, expired and overturned entries
excluded), never kept as a mutable counter. Violation creation is
serialized per user so concurrent resolutions see each other.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple, Union
from uuid import UUID

from moderation_engine.lib.clock import Clock, utcnow
from moderation_engine.lib.config import EngineSettings
from moderation_engine.lib.errors import AlreadyDecided, InvalidAction, NotFound
from moderation_engine.lib.metrics import MetricsExporter
from moderation_engine.lib.store import ModerationStore, Transaction
from moderation_engine.models.enums import (
    AccountStatus, CaseDecision, EnforcementType, EventType, LadderStep,
    PUNITIVE_ACTIONS, ReportAction, ReportReason, ReportStatus, RestrictedFeature, Severity
)
from moderation_engine.models.events import AccountStatusInstruction, EngineEvent
from moderation_engine.models.guidelines import LadderTier
from moderation_engine.models.report import ContentReport, ReportDecision
from moderation_engine.models.user import AccountStanding
from moderation_engine.models.violation import (
    AccountSanction, EnforcementAction, Restriction, UserViolation
)
from moderation_engine.services.case_service import SYSTEM_ACTOR, CaseService
from moderation_engine.services.dispatcher import Dispatcher
from moderation_engine.services.guideline_registry import GuidelineRegistry

logger = logging.getLogger(__name__)


ACTION_SEVERITY: Dict[ReportAction, Severity] = {
    ReportAction.USER_WARNED: Severity.LOW,
    ReportAction.CONTENT_REMOVED: Severity.MEDIUM,
    ReportAction.USER_RESTRICTED: Severity.HIGH,
    ReportAction.USER_SUSPENDED: Severity.HIGH,
    ReportAction.USER_BANNED: Severity.CRITICAL,
}

ACTION_ENFORCEMENT_TYPE: Dict[ReportAction, EnforcementType] = {
    ReportAction.USER_WARNED: EnforcementType.WARNING,
    ReportAction.CONTENT_REMOVED: EnforcementType.CONTENT_REMOVAL,
    ReportAction.USER_RESTRICTED: EnforcementType.FEATURE_RESTRICTION,
    ReportAction.USER_SUSPENDED: EnforcementType.TEMPORARY_SUSPENSION,
    ReportAction.USER_BANNED: EnforcementType.PERMANENT_BAN,
}

for _table in (ACTION_SEVERITY, ACTION_ENFORCEMENT_TYPE):
    if set(_table) != PUNITIVE_ACTIONS:
        raise RuntimeError(
            f"Enforcement table out of sync with punitive actions: "
            f"{sorted(a.value for a in PUNITIVE_ACTIONS ^ set(_table))}"
        )

# Content effect of a report decision on its case
CONTENT_EFFECTS: Dict[ReportAction, CaseDecision] = {
    ReportAction.CONTENT_REMOVED: CaseDecision.REMOVED,
    ReportAction.CONTENT_WARNING_ADDED: CaseDecision.WARNING_ADDED,
}

RESTRICTION_FEATURES: Dict[ReportReason, Tuple[RestrictedFeature, ...]] = {
    ReportReason.HARASSMENT_BULLYING: (RestrictedFeature.COMMENTING, RestrictedFeature.MESSAGING),
    ReportReason.SPAM: (RestrictedFeature.POSTING, RestrictedFeature.MESSAGING),
}
DEFAULT_RESTRICTED_FEATURES = (RestrictedFeature.POSTING,)


@dataclass
class Resolution:
    """Outcome of resolving a report."""
    report: ContentReport
    violation: Optional[UserViolation] = None
    standing: Optional[AccountStanding] = None


@dataclass
class ViolationHistory:
    user_id: str
    violations: List[UserViolation]
    rolling_strikes: int
    standing: AccountStanding


@dataclass
class SweepResult:
    expired: List[UUID] = field(default_factory=list)
    deactivated: List[UUID] = field(default_factory=list)
    reinstated_users: List[str] = field(default_factory=list)


def _report_state(report: ContentReport) -> dict:
    return {"status": report.status.value}


class EnforcementService:

    def __init__(self,
                 store: ModerationStore,
                 settings: EngineSettings,
                 registry: GuidelineRegistry,
                 cases: CaseService,
                 dispatcher: Dispatcher,
                 clock: Clock = utcnow):
        self.store = store
        self.settings = settings
        self.registry = registry
        self.cases = cases
        self.dispatcher = dispatcher
        self.clock = clock

    # ------------------------------------------------------------------
    # Report resolution
    # ------------------------------------------------------------------

    @MetricsExporter.track_operation('resolve_report')
    def resolve(self, report_id: UUID, reviewer_id: str, action: Union[ReportAction, str],
                reason: str, review_notes: Optional[str] = None) -> Resolution:
        """
        Resolve a report. Punitive actions issue exactly one violation
        against the content owner in the same transaction.
        """
        try:
            action = ReportAction(action)
        except ValueError:
            raise InvalidAction(f"Unknown report action '{action}'")
        if not reason or not reason.strip():
            raise InvalidAction("A reason is required to resolve a report")

        now = self.clock()
        violation = None
        standing = None
        with self.store.transaction() as tx:
            report = tx.get_report(report_id, for_update=True)
            if report is None:
                raise NotFound(f"Report {report_id} not found")
            if not report.is_open:
                raise AlreadyDecided(f"Report {report_id} is already {report.status.value}",
                                     current_state=_report_state(report))

            report.status = ReportStatus.RESOLVED
            report.reviewer_id = reviewer_id
            report.reviewed_at = now
            report.review_notes = review_notes
            report.updated_at = now
            report.decision = ReportDecision(
                action=action,
                reason=reason,
                reviewer_id=reviewer_id,
                action_taken_at=now,
                appeal_deadline=now + timedelta(days=self.settings.appeal_window_days),
                legal_reference=(
                    f"LEGAL-{report.id.hex[:8].upper()}"
                    if action == ReportAction.ESCALATED_TO_LEGAL else None
                ),
            )

            effect = CONTENT_EFFECTS.get(action)
            if effect is not None:
                case = tx.get_case(report.case_id, for_update=True)
                if case is not None:
                    self.cases.apply_report_effect_tx(tx, case, effect, reviewer_id, reason, now)

            if action in PUNITIVE_ACTIONS:
                violation, standing = self.issue_violation_tx(tx, report, action, reviewer_id, reason, now)

            tx.put_report(report)
            tx.emit(EngineEvent(
                user_id=report.reporter_id,
                event_type=EventType.REPORT_RESOLVED,
                payload={'report_id': str(report.id), 'action': action.value},
                occurred_at=now,
            ))
            outbox = tx.outbox

        self.dispatcher.deliver(outbox)
        if violation is not None:
            MetricsExporter.record_violation(violation.action.type.value, violation.ladder_tier)
        logger.info(f"Report {report_id} resolved with {action.value} by {reviewer_id}")
        return Resolution(report=report, violation=violation, standing=standing)

    def issue_violation_tx(self, tx: Transaction, report: ContentReport, action: ReportAction,
                           issued_by: str, reason: str,
                           now: datetime) -> Tuple[UserViolation, AccountStanding]:
        user_id = report.content_owner_id
        tx.lock_user(user_id)
        history = tx.list_violations_for_user(user_id)
        before = self._standing_from(user_id, history, now)

        weight = 1
        rolling = self._rolling(history, now) + weight
        guideline = self.registry.get_active_version(tx)
        ladder = self.registry.category_for(guideline, report.reason).ladder
        tier = ladder[min(rolling, len(ladder)) - 1]

        end_date = (
            now + timedelta(days=self.settings.suspension_days)
            if action == ReportAction.USER_SUSPENDED else None
        )
        sanction = self._effective_sanction(action, tier, end_date, now)
        banned = sanction is not None and sanction.status == AccountStatus.BANNED

        violation = UserViolation(
            user_id=user_id,
            violation_type=report.reason,
            severity=ACTION_SEVERITY[action],
            description=reason,
            related_report_id=report.id,
            related_case_id=report.case_id,
            content=report.content,
            action=EnforcementAction(
                type=ACTION_ENFORCEMENT_TYPE[action],
                start_date=now,
                end_date=end_date,
                restrictions=self._restrictions(action, tier, report.reason, now),
            ),
            strike_count=weight,
            guideline_version=guideline.version,
            ladder_tier=tier.tier,
            ladder_step=tier.action,
            rolling_strikes=rolling,
            appealable=tier.appealable,
            account_sanction=sanction,
            issued_by=issued_by,
            issued_by_system=issued_by == SYSTEM_ACTOR,
            appeal_deadline=now + timedelta(days=self.settings.appeal_window_days),
            expires_at=None if banned else now + timedelta(days=self.settings.strike_window_days),
            created_at=now,
            updated_at=now,
        )
        tx.put_violation(violation)
        tx.emit(EngineEvent(
            user_id=user_id,
            event_type=EventType.STRIKE_ISSUED,
            payload={
                'violation_id': str(violation.id),
                'violation_type': violation.violation_type.value,
                'severity': violation.severity.value,
                'action': violation.action.type.value,
                'ladder_tier': tier.tier,
                'ladder_step': tier.action.value,
                'rolling_strikes': rolling,
            },
            occurred_at=now,
        ))

        after = self._standing_from(user_id, [violation] + history, now)
        self.emit_standing_change_tx(tx, before, after, now)
        logger.info(
            f"Violation {violation.id} issued to {user_id}: {action.value}, "
            f"tier {tier.tier} ({tier.action.value}), rolling strikes {rolling}"
        )
        return violation, after

    def _effective_sanction(self, action: ReportAction, tier: LadderTier,
                            end_date: Optional[datetime], now: datetime) -> Optional[AccountSanction]:
        """The more severe of the reviewer action's and the ladder step's sanction."""
        if action == ReportAction.USER_BANNED or tier.action == LadderStep.PERMANENT_BAN:
            return AccountSanction(status=AccountStatus.BANNED)

        until = None
        if action == ReportAction.USER_SUSPENDED:
            until = end_date
        if tier.action == LadderStep.TEMPORARY_BAN:
            ladder_until = now + timedelta(days=tier.duration_days or self.settings.suspension_days)
            until = ladder_until if until is None else max(until, ladder_until)
        if until is None:
            return None
        return AccountSanction(status=AccountStatus.SUSPENDED, until=until)

    def _restrictions(self, action: ReportAction, tier: LadderTier, reason: ReportReason,
                      now: datetime) -> List[Restriction]:
        features = RESTRICTION_FEATURES.get(reason, DEFAULT_RESTRICTED_FEATURES)
        until_by_feature: Dict[RestrictedFeature, datetime] = {}
        windows = []
        if tier.action == LadderStep.TEMPORARY_RESTRICTION:
            windows.append(tier.duration_days or self.settings.restriction_days)
        if action == ReportAction.USER_RESTRICTED:
            windows.append(self.settings.restriction_days)
        for days in windows:
            until = now + timedelta(days=days)
            for feature in features:
                until_by_feature[feature] = max(until_by_feature.get(feature, until), until)
        return [Restriction(feature=f, until=u) for f, u in until_by_feature.items()]

    # ------------------------------------------------------------------
    # Derived account state
    # ------------------------------------------------------------------

    def _rolling(self, violations: Iterable[UserViolation], now: datetime) -> int:
        window = self.settings.strike_window_days
        return sum(v.strike_count for v in violations if v.counts_toward_strikes(now, window))

    def _standing_from(self, user_id: str, violations: Iterable[UserViolation],
                       now: datetime) -> AccountStanding:
        violations = list(violations)
        banned = False
        suspended_until: Optional[datetime] = None
        restrictions: List[Restriction] = []
        active_ids: List[UUID] = []

        for v in violations:
            if v.overturned or v.is_expired or (v.expires_at is not None and v.expires_at <= now):
                continue
            if v.action.is_active and (v.action.end_date is None or v.action.end_date > now):
                active_ids.append(v.id)
            if v.sanction_in_force(now):
                if v.account_sanction.status == AccountStatus.BANNED:
                    banned = True
                elif suspended_until is None or v.account_sanction.until > suspended_until:
                    suspended_until = v.account_sanction.until
            if v.action.is_active:
                restrictions.extend(r for r in v.action.restrictions if r.until > now)

        if banned:
            status, until = AccountStatus.BANNED, None
        elif suspended_until is not None:
            status, until = AccountStatus.SUSPENDED, suspended_until
        else:
            status, until = AccountStatus.ACTIVE, None

        return AccountStanding(
            user_id=user_id,
            status=status,
            until=until,
            restrictions=restrictions,
            active_violation_ids=active_ids,
            rolling_strikes=self._rolling(violations, now),
            computed_at=now,
        )

    def standing_tx(self, tx: Transaction, user_id: str, now: datetime) -> AccountStanding:
        return self._standing_from(user_id, tx.list_violations_for_user(user_id), now)

    def emit_standing_change_tx(self, tx: Transaction, before: AccountStanding,
                                after: AccountStanding, now: datetime) -> None:
        if (before.status, before.until) == (after.status, after.until):
            return
        tx.emit(AccountStatusInstruction(user_id=after.user_id, status=after.status, until=after.until))
        tx.emit(EngineEvent(
            user_id=after.user_id,
            event_type=EventType.ACCOUNT_STATUS_CHANGED,
            payload={
                'status': after.status.value,
                'until': after.until.isoformat() if after.until else None,
                'previous_status': before.status.value,
            },
            occurred_at=now,
        ))
        logger.info(f"Account {after.user_id} status {before.status.value} -> {after.status.value}")

    def rolling_strike_count(self, user_id: str) -> int:
        now = self.clock()
        with self.store.transaction() as tx:
            return self._rolling(tx.list_violations_for_user(user_id), now)

    def account_standing(self, user_id: str) -> AccountStanding:
        """Source of truth for enforcement checks; expired sanctions never count."""
        now = self.clock()
        with self.store.transaction() as tx:
            return self.standing_tx(tx, user_id, now)

    def violation_history(self, user_id: str) -> ViolationHistory:
        now = self.clock()
        with self.store.transaction() as tx:
            violations = tx.list_violations_for_user(user_id)
        standing = self._standing_from(user_id, violations, now)
        return ViolationHistory(
            user_id=user_id,
            violations=[self._lazy_view(v, now) for v in violations],
            rolling_strikes=standing.rolling_strikes,
            standing=standing,
        )

    def get_violation(self, violation_id: UUID) -> UserViolation:
        with self.store.transaction() as tx:
            violation = tx.get_violation(violation_id)
        if violation is None:
            raise NotFound(f"Violation {violation_id} not found")
        return self._lazy_view(violation, self.clock())

    @staticmethod
    def _lazy_view(violation: UserViolation, now: datetime) -> UserViolation:
        """Present a past-due violation as expired even before the sweep runs."""
        if violation.is_expired or violation.expires_at is None or violation.expires_at > now:
            return violation
        view = violation.model_copy(deep=True)
        view.is_expired = True
        view.action.is_active = False
        return view

    # ------------------------------------------------------------------
    # Expiry and reversal
    # ------------------------------------------------------------------

    def expire_due(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Flag violations past `expires_at`, deactivate actions past their end
        date and reinstate accounts whose last suspension lapsed.
        """
        now = now or self.clock()
        result = SweepResult()
        lifted_users = set()
        with self.store.transaction() as tx:
            for v in tx.list_unexpired_violations():
                changed = False
                if v.expires_at is not None and v.expires_at <= now:
                    v.is_expired = True
                    v.action.is_active = False
                    result.expired.append(v.id)
                    changed = True
                    tx.emit(EngineEvent(
                        user_id=v.user_id,
                        event_type=EventType.VIOLATION_EXPIRED,
                        payload={'violation_id': str(v.id)},
                        occurred_at=now,
                    ))
                if v.action.is_active and v.action.end_date is not None and v.action.end_date <= now:
                    v.action.is_active = False
                    result.deactivated.append(v.id)
                    changed = True
                sanction = v.account_sanction
                if (sanction is not None and sanction.until is not None and sanction.until <= now
                        and v.sanction_lifted_at is None):
                    v.sanction_lifted_at = now
                    lifted_users.add(v.user_id)
                    changed = True
                if changed:
                    v.updated_at = now
                    tx.put_violation(v)

            for user_id in sorted(lifted_users):
                standing = self.standing_tx(tx, user_id, now)
                if standing.status == AccountStatus.ACTIVE:
                    tx.emit(AccountStatusInstruction(user_id=user_id, status=AccountStatus.ACTIVE))
                    tx.emit(EngineEvent(
                        user_id=user_id,
                        event_type=EventType.ACCOUNT_STATUS_CHANGED,
                        payload={'status': AccountStatus.ACTIVE.value, 'until': None,
                                 'previous_status': AccountStatus.SUSPENDED.value},
                        occurred_at=now,
                    ))
                    result.reinstated_users.append(user_id)
            outbox = tx.outbox

        self.dispatcher.deliver(outbox)
        MetricsExporter.record_expirations(len(result.expired))
        if result.expired or result.deactivated or result.reinstated_users:
            logger.info(
                f"Expiry sweep: {len(result.expired)} expired, {len(result.deactivated)} deactivated, "
                f"{len(result.reinstated_users)} accounts reinstated"
            )
        return result

    def retract_tx(self, tx: Transaction, violation: UserViolation, actor: str,
                   now: datetime) -> None:
        """Overturn one violation. Earlier tier selections are left as issued."""
        violation.overturned_at = now
        violation.action.is_active = False
        violation.updated_at = now
        tx.put_violation(violation)
        tx.emit(EngineEvent(
            user_id=violation.user_id,
            event_type=EventType.ENFORCEMENT_REVERSED,
            payload={
                'violation_id': str(violation.id),
                'report_id': str(violation.related_report_id) if violation.related_report_id else None,
                'reversed_by': actor,
            },
            occurred_at=now,
        ))
        logger.info(f"Violation {violation.id} retracted by {actor}")
