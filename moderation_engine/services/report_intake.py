"""
Report Intake - records user reports against moderation cases.

Identical reports from different submissions are all kept (report volume
is a priority signal), but a retried request with the same payload from
the same reporter inside the dedupe window returns the report created
the first time.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple
from uuid import UUID

from moderation_engine.lib.clock import Clock, utcnow
from moderation_engine.lib.config import EngineSettings
from moderation_engine.lib.errors import AlreadyDecided, Conflict, InvalidTransition, NotFound
from moderation_engine.lib.metrics import MetricsExporter
from moderation_engine.lib.store import ModerationStore, Transaction
from moderation_engine.models.content import ContentSnapshot, ModerationCase, ScoreResult
from moderation_engine.models.enums import EventType, ReportPriority, ReportStatus
from moderation_engine.models.events import EngineEvent
from moderation_engine.models.report import ContentReport, ReportSubmission
from moderation_engine.services.case_service import CaseService
from moderation_engine.services.dispatcher import Dispatcher

logger = logging.getLogger(__name__)


def _report_state(report: ContentReport) -> dict:
    return {"status": report.status.value, "priority": report.priority.value}


class ReportIntake:

    # Open reports on one case at which priority is raised to at least HIGH
    VOLUME_BOOST_THRESHOLD = 5

    def __init__(self,
                 store: ModerationStore,
                 settings: EngineSettings,
                 cases: CaseService,
                 dispatcher: Dispatcher,
                 clock: Clock = utcnow):
        self.store = store
        self.settings = settings
        self.cases = cases
        self.dispatcher = dispatcher
        self.clock = clock

    def get_report(self, report_id: UUID) -> ContentReport:
        with self.store.transaction() as tx:
            report = tx.get_report(report_id)
        if report is None:
            raise NotFound(f"Report {report_id} not found")
        return report

    async def submit(self, reporter_id: str, submission: ReportSubmission) -> ContentReport:
        """
        Capture a snapshot, make sure the content has a scored case, and
        record the report. Hard-escalation reasons are always critical and
        skip the standard queue.
        """
        now = self.clock()
        fingerprint = submission.fingerprint(reporter_id)
        window_start = now - timedelta(seconds=self.settings.dedupe_window_seconds)

        # Store and delivery calls block, so they run off the event loop
        existing, case = await asyncio.to_thread(self._lookup, submission, fingerprint, window_start)
        if existing is not None:
            logger.info(f"Retried submission matched report {existing.id}")
            return existing

        # Slow collaborators are called outside the transaction
        snapshot = await self.cases.capture_snapshot(submission.content, now)
        score = None
        if case is None or not case.is_scored:
            score = await self._score(snapshot)

        try:
            report = await asyncio.to_thread(
                self._record, reporter_id, submission, fingerprint, window_start, snapshot, score, now
            )
        except Conflict:
            # Concurrent first report on the same content created the case
            logger.info(f"Case create race on {submission.content.content_id}, retrying")
            report = await asyncio.to_thread(
                self._record, reporter_id, submission, fingerprint, window_start, snapshot, score, now
            )
        return report

    def _lookup(self, submission: ReportSubmission, fingerprint: str,
                window_start: datetime) -> Tuple[Optional[ContentReport], Optional[ModerationCase]]:
        with self.store.transaction() as tx:
            return (
                tx.find_report_by_fingerprint(fingerprint, window_start),
                tx.find_case(submission.content),
            )

    async def _score(self, snapshot: ContentSnapshot) -> ScoreResult:
        score = await self.cases.scorer.score(snapshot)
        if not snapshot.source_available:
            score = score.model_copy(update={
                'degraded': True,
                'failed_detectors': score.failed_detectors + ['content_store'],
            })
        return score

    def _record(self, reporter_id: str, submission: ReportSubmission, fingerprint: str,
                window_start: datetime, snapshot: ContentSnapshot,
                score: Optional[ScoreResult], now: datetime) -> ContentReport:
        with self.store.transaction() as tx:
            tx.advisory_lock(f"report:{fingerprint}")
            existing = tx.find_report_by_fingerprint(fingerprint, window_start)
            if existing is not None:
                return existing

            case = self.cases.ensure_case_tx(tx, submission.content, submission.content_owner_id, now)
            if score is not None and not case.is_scored:
                self.cases.apply_score_tx(tx, case, score, now)

            priority, status = self._triage(tx, submission, case)
            report = ContentReport(
                reporter_id=reporter_id,
                content=submission.content,
                content_owner_id=submission.content_owner_id,
                snapshot=snapshot,
                case_id=case.id,
                reason=submission.reason,
                subcategory=submission.subcategory,
                description=submission.description,
                evidence=submission.evidence,
                status=status,
                priority=priority,
                fingerprint=fingerprint,
                created_at=now,
                updated_at=now,
            )
            tx.put_report(report)

            tx.emit(EngineEvent(
                user_id=reporter_id,
                event_type=EventType.REPORT_RECEIVED,
                payload={'report_id': str(report.id), 'reason': report.reason.value},
                occurred_at=now,
            ))
            if status == ReportStatus.ESCALATED:
                tx.emit(EngineEvent(
                    user_id=reporter_id,
                    event_type=EventType.REPORT_ESCALATED,
                    payload={'report_id': str(report.id), 'reason': report.reason.value},
                    occurred_at=now,
                ))
            outbox = tx.outbox

        self.dispatcher.deliver(outbox)
        MetricsExporter.record_report(report.reason.value, report.priority.value)
        if status == ReportStatus.ESCALATED:
            logger.warning(f"Report {report.id} escalated: {report.reason.value}")
        else:
            logger.info(f"Report {report.id} submitted ({report.reason.value}, {report.priority.value})")
        return report

    def _triage(self, tx: Transaction, submission: ReportSubmission,
                case: ModerationCase) -> Tuple[ReportPriority, ReportStatus]:
        if submission.reason in self.settings.hard_escalation_reasons:
            return ReportPriority.CRITICAL, ReportStatus.ESCALATED

        priority = submission.priority or ReportPriority.MEDIUM
        if priority == ReportPriority.CRITICAL:
            # Critical is reserved for the hard-escalation reasons
            priority = ReportPriority.HIGH

        open_reports = [r for r in tx.list_reports_for_case(case.id) if r.is_open]
        if len(open_reports) + 1 >= self.VOLUME_BOOST_THRESHOLD and priority.rank < ReportPriority.HIGH.rank:
            priority = ReportPriority.HIGH
        return priority, ReportStatus.PENDING

    def start_review(self, report_id: UUID, reviewer_id: str) -> ContentReport:
        """Claim a pending or escalated report."""
        now = self.clock()
        with self.store.transaction() as tx:
            report = tx.get_report(report_id, for_update=True)
            if report is None:
                raise NotFound(f"Report {report_id} not found")
            if not report.is_open:
                raise InvalidTransition(f"Report {report_id} is {report.status.value}",
                                        current_state=_report_state(report))
            report.status = ReportStatus.UNDER_REVIEW
            report.reviewer_id = reviewer_id
            report.updated_at = now
            tx.put_report(report)
        logger.info(f"Report {report_id} claimed by {reviewer_id}")
        return report

    def dismiss(self, report_id: UUID, reviewer_id: str, reason: str) -> ContentReport:
        """Close a report without action. No violation is issued."""
        now = self.clock()
        with self.store.transaction() as tx:
            report = tx.get_report(report_id, for_update=True)
            if report is None:
                raise NotFound(f"Report {report_id} not found")
            if not report.is_open:
                raise AlreadyDecided(f"Report {report_id} is already {report.status.value}",
                                     current_state=_report_state(report))
            report.status = ReportStatus.DISMISSED
            report.reviewer_id = reviewer_id
            report.reviewed_at = now
            report.review_notes = reason
            report.updated_at = now
            tx.put_report(report)
            tx.emit(EngineEvent(
                user_id=report.reporter_id,
                event_type=EventType.REPORT_DISMISSED,
                payload={'report_id': str(report.id)},
                occurred_at=now,
            ))
            outbox = tx.outbox
        self.dispatcher.deliver(outbox)
        logger.info(f"Report {report_id} dismissed by {reviewer_id}")
        return report
