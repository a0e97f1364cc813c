"""
In-process store. One re-entrant lock is held for the whole transaction,
so every unit of work is linearizable. Writes are staged and applied on
commit; reads hand out deep copies.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple, TypeVar
from uuid import UUID

from pydantic import BaseModel

from moderation_engine.lib.errors import Conflict, DuplicateVersion, NotFound
from moderation_engine.lib.store import ModerationStore, Transaction
from moderation_engine.models.content import ContentRef, ModerationCase
from moderation_engine.models.enums import CaseStatus
from moderation_engine.models.guidelines import GuidelineVersion
from moderation_engine.models.report import ContentReport
from moderation_engine.models.violation import UserViolation

logger = logging.getLogger(__name__)

M = TypeVar('M', bound=BaseModel)


def _copy(obj: Optional[M]) -> Optional[M]:
    return obj.model_copy(deep=True) if obj is not None else None


class InMemoryStore(ModerationStore):
    """
    Dictionary-backed store for tests and single-process deployments.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.guidelines: Dict[str, GuidelineVersion] = {}
        self.active_guideline: Optional[str] = None
        self.cases: Dict[UUID, ModerationCase] = {}
        self.case_index: Dict[Tuple[str, str], UUID] = {}
        self.reports: Dict[UUID, ContentReport] = {}
        self.violations: Dict[UUID, UserViolation] = {}

    @contextmanager
    def transaction(self) -> Iterator['_MemoryTransaction']:
        with self._lock:
            tx = _MemoryTransaction(self)
            try:
                yield tx
            except Exception:
                logger.debug("In-memory transaction rolled back")
                raise
            tx.commit()


class _MemoryTransaction(Transaction):

    def __init__(self, store: InMemoryStore):
        super().__init__()
        self._store = store
        self._guidelines: Dict[str, GuidelineVersion] = {}
        self._active_guideline: Optional[str] = None
        self._active_changed = False
        self._cases: Dict[UUID, ModerationCase] = {}
        self._reports: Dict[UUID, ContentReport] = {}
        self._violations: Dict[UUID, UserViolation] = {}

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(self) -> None:
        store = self._store
        store.guidelines.update(self._guidelines)
        if self._active_changed:
            store.active_guideline = self._active_guideline
        for case in self._cases.values():
            case.version += 1
            store.cases[case.id] = case
            store.case_index[case.content.key] = case.id
        for report in self._reports.values():
            report.version += 1
            store.reports[report.id] = report
        for violation in self._violations.values():
            violation.version += 1
            store.violations[violation.id] = violation

    @staticmethod
    def _check_version(current: Optional[BaseModel], incoming: BaseModel) -> None:
        if current is not None and current.version != incoming.version:
            raise Conflict(
                f"{type(incoming).__name__} {incoming.id} was modified concurrently",
                current_state={"version": current.version},
            )

    # ------------------------------------------------------------------
    # Guideline versions
    # ------------------------------------------------------------------

    def get_guideline(self, version: str) -> Optional[GuidelineVersion]:
        if version in self._guidelines:
            return self._guidelines[version]
        return self._store.guidelines.get(version)

    def get_active_guideline_id(self) -> Optional[str]:
        if self._active_changed:
            return self._active_guideline
        return self._store.active_guideline

    def list_guidelines(self) -> List[GuidelineVersion]:
        merged = dict(self._store.guidelines)
        merged.update(self._guidelines)
        return sorted(merged.values(), key=lambda g: g.effective_date)

    def insert_guideline(self, guideline: GuidelineVersion) -> None:
        if self.get_guideline(guideline.version) is not None:
            raise DuplicateVersion(f"Guideline version {guideline.version} already exists")
        self._guidelines[guideline.version] = guideline

    def set_active_guideline(self, version: str) -> None:
        target = self.get_guideline(version)
        if target is None:
            raise NotFound(f"Guideline version {version} not found")
        previous = self.get_active_guideline_id()
        if previous and previous != version:
            prior = self.get_guideline(previous)
            self._guidelines[previous] = prior.model_copy(update={'is_active': False})
        self._guidelines[version] = target.model_copy(update={'is_active': True})
        self._active_guideline = version
        self._active_changed = True

    # ------------------------------------------------------------------
    # Moderation cases
    # ------------------------------------------------------------------

    def get_case(self, case_id: UUID, for_update: bool = False) -> Optional[ModerationCase]:
        if case_id in self._cases:
            return _copy(self._cases[case_id])
        return _copy(self._store.cases.get(case_id))

    def find_case(self, ref: ContentRef, for_update: bool = False) -> Optional[ModerationCase]:
        for case in self._cases.values():
            if case.content.key == ref.key:
                return _copy(case)
        case_id = self._store.case_index.get(ref.key)
        return _copy(self._store.cases.get(case_id)) if case_id else None

    def put_case(self, case: ModerationCase) -> None:
        self._check_version(self._store.cases.get(case.id), case)
        existing_id = self._store.case_index.get(case.content.key)
        if existing_id is not None and existing_id != case.id:
            raise Conflict(f"A case already exists for {case.content.content_type.value}/{case.content.content_id}")
        self._cases[case.id] = _copy(case)

    def _all_cases(self) -> List[ModerationCase]:
        merged = dict(self._store.cases)
        merged.update(self._cases)
        return list(merged.values())

    def list_cases_awaiting_review(self) -> List[ModerationCase]:
        open_statuses = (CaseStatus.PENDING, CaseStatus.UNDER_REVIEW)
        return [
            _copy(c) for c in self._all_cases()
            if c.awaiting_review and c.status in open_statuses
        ]

    # ------------------------------------------------------------------
    # Content reports
    # ------------------------------------------------------------------

    def get_report(self, report_id: UUID, for_update: bool = False) -> Optional[ContentReport]:
        if report_id in self._reports:
            return _copy(self._reports[report_id])
        return _copy(self._store.reports.get(report_id))

    def put_report(self, report: ContentReport) -> None:
        self._check_version(self._store.reports.get(report.id), report)
        self._reports[report.id] = _copy(report)

    def _all_reports(self) -> List[ContentReport]:
        merged = dict(self._store.reports)
        merged.update(self._reports)
        return list(merged.values())

    def find_report_by_fingerprint(self, fingerprint: str, since: datetime) -> Optional[ContentReport]:
        matches = [
            r for r in self._all_reports()
            if r.fingerprint == fingerprint and r.created_at >= since
        ]
        matches.sort(key=lambda r: r.created_at, reverse=True)
        return _copy(matches[0]) if matches else None

    def list_open_reports(self) -> List[ContentReport]:
        return [_copy(r) for r in self._all_reports() if r.is_open]

    def list_reports_for_case(self, case_id: UUID) -> List[ContentReport]:
        return [_copy(r) for r in self._all_reports() if r.case_id == case_id]

    def list_reports_with_open_appeal(self) -> List[ContentReport]:
        return [_copy(r) for r in self._all_reports() if r.appeal is not None and r.appeal.is_open]

    # ------------------------------------------------------------------
    # User violations
    # ------------------------------------------------------------------

    def get_violation(self, violation_id: UUID, for_update: bool = False) -> Optional[UserViolation]:
        if violation_id in self._violations:
            return _copy(self._violations[violation_id])
        return _copy(self._store.violations.get(violation_id))

    def put_violation(self, violation: UserViolation) -> None:
        self._check_version(self._store.violations.get(violation.id), violation)
        self._violations[violation.id] = _copy(violation)

    def _all_violations(self) -> List[UserViolation]:
        merged = dict(self._store.violations)
        merged.update(self._violations)
        return list(merged.values())

    def list_violations_for_user(self, user_id: str) -> List[UserViolation]:
        found = [_copy(v) for v in self._all_violations() if v.user_id == user_id]
        found.sort(key=lambda v: v.created_at, reverse=True)
        return found

    def list_violations_for_report(self, report_id: UUID) -> List[UserViolation]:
        return [_copy(v) for v in self._all_violations() if v.related_report_id == report_id]

    def list_unexpired_violations(self) -> List[UserViolation]:
        return [_copy(v) for v in self._all_violations() if not v.is_expired]

    def list_violations_with_open_appeal(self) -> List[UserViolation]:
        return [_copy(v) for v in self._all_violations() if v.appeal is not None and v.appeal.is_open]

    def advisory_lock(self, key: str) -> None:
        # The store-wide lock already serializes every transaction.
        return None
