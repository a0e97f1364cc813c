"""
Review Queue - read projection over open reports and cases awaiting review.

Pulling a batch never removes anything; only a recorded decision does.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from moderation_engine.lib.metrics import MetricsExporter
from moderation_engine.lib.store import ModerationStore
from moderation_engine.models.content import ContentRef, ModerationCase
from moderation_engine.models.enums import Recommendation, ReportPriority
from moderation_engine.models.report import ContentReport

logger = logging.getLogger(__name__)


@dataclass
class QueueItem:
    """One reviewable unit: a report or a case."""
    kind: str  # report | case
    id: UUID
    priority: ReportPriority
    risk_score: int
    created_at: datetime
    status: str
    content: ContentRef
    case_id: UUID
    reason: Optional[str] = None
    degraded: bool = False
    extra: Dict[str, object] = field(default_factory=dict)

    @property
    def sort_key(self):
        return (-self.priority.rank, -self.risk_score, self.created_at)

    def to_dict(self) -> Dict[str, object]:
        return {
            'kind': self.kind,
            'id': str(self.id),
            'priority': self.priority.value,
            'risk_score': self.risk_score,
            'created_at': self.created_at.isoformat(),
            'status': self.status,
            'content_type': self.content.content_type.value,
            'content_id': self.content.content_id,
            'case_id': str(self.case_id),
            'reason': self.reason,
            'degraded': self.degraded,
            **self.extra,
        }


def case_priority(case: ModerationCase) -> ReportPriority:
    if case.recommendation == Recommendation.REMOVE:
        priority = ReportPriority.HIGH
    elif case.recommendation == Recommendation.REVIEW:
        priority = ReportPriority.MEDIUM
    else:
        priority = ReportPriority.LOW
    if case.scoring_degraded and priority.rank < ReportPriority.MEDIUM.rank:
        priority = ReportPriority.MEDIUM
    return priority


class ReviewQueue:

    def __init__(self, store: ModerationStore):
        self.store = store

    def next_batch(self, limit: int = 50, include_cases: bool = True) -> List[QueueItem]:
        """
        Ordered by priority desc, risk desc, then oldest first. Cases that
        already have an open report are represented by that report.
        """
        if limit <= 0:
            return []

        with self.store.transaction() as tx:
            reports = tx.list_open_reports()
            cases_awaiting = tx.list_cases_awaiting_review() if include_cases else []
            case_ids = {r.case_id for r in reports}
            cases: Dict[UUID, ModerationCase] = {c.id: c for c in cases_awaiting}
            for case_id in case_ids - set(cases):
                case = tx.get_case(case_id)
                if case is not None:
                    cases[case_id] = case

        items = [self._report_item(r, cases.get(r.case_id)) for r in reports]
        items.extend(self._case_item(c) for c in cases_awaiting if c.id not in case_ids)
        items.sort(key=lambda item: item.sort_key)

        depth = Counter(item.priority.value for item in items)
        for priority in ReportPriority:
            MetricsExporter.update_queue_depth(priority.value, depth.get(priority.value, 0))
        return items[:limit]

    def pending_reports(self, limit: int = 50) -> List[QueueItem]:
        return self.next_batch(limit, include_cases=False)

    @staticmethod
    def _report_item(report: ContentReport, case: Optional[ModerationCase]) -> QueueItem:
        return QueueItem(
            kind='report',
            id=report.id,
            priority=report.priority,
            risk_score=(case.risk_score or 0) if case else 0,
            created_at=report.created_at,
            status=report.status.value,
            content=report.content,
            case_id=report.case_id,
            reason=report.reason.value,
            degraded=case.scoring_degraded if case else False,
            extra={'reporter_id': report.reporter_id, 'content_owner_id': report.content_owner_id},
        )

    @staticmethod
    def _case_item(case: ModerationCase) -> QueueItem:
        return QueueItem(
            kind='case',
            id=case.id,
            priority=case_priority(case),
            risk_score=case.risk_score or 0,
            created_at=case.created_at,
            status=case.status.value,
            content=case.content,
            case_id=case.id,
            reason=case.recommendation.value if case.recommendation else None,
            degraded=case.scoring_degraded,
            extra={'content_owner_id': case.owner_id},
        )
