"""
Unit-of-work contract shared by the in-memory and PostgreSQL stores.

Every engine mutation runs inside ``store.transaction()``. Either all
staged writes become visible together or none do, and outbound messages
queued on ``tx.outbox`` are only delivered by the caller after commit.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional
from uuid import UUID

from moderation_engine.models.content import ContentRef, ModerationCase
from moderation_engine.models.events import OutboundMessage
from moderation_engine.models.guidelines import GuidelineVersion
from moderation_engine.models.report import ContentReport
from moderation_engine.models.violation import UserViolation


class Transaction(ABC):
    """Typed access to engine entities within one atomic unit."""

    def __init__(self):
        self.outbox: List[OutboundMessage] = []

    def emit(self, message: OutboundMessage) -> None:
        self.outbox.append(message)

    # Guideline versions
    @abstractmethod
    def get_guideline(self, version: str) -> Optional[GuidelineVersion]: ...

    @abstractmethod
    def get_active_guideline_id(self) -> Optional[str]: ...

    @abstractmethod
    def list_guidelines(self) -> List[GuidelineVersion]: ...

    @abstractmethod
    def insert_guideline(self, guideline: GuidelineVersion) -> None:
        """Insert a new version. Raises DuplicateVersion when it exists."""

    @abstractmethod
    def set_active_guideline(self, version: str) -> None:
        """Make `version` the only active version."""

    def get_active_guideline(self) -> Optional[GuidelineVersion]:
        active_id = self.get_active_guideline_id()
        return self.get_guideline(active_id) if active_id else None

    # Moderation cases
    @abstractmethod
    def get_case(self, case_id: UUID, for_update: bool = False) -> Optional[ModerationCase]: ...

    @abstractmethod
    def find_case(self, ref: ContentRef, for_update: bool = False) -> Optional[ModerationCase]: ...

    @abstractmethod
    def put_case(self, case: ModerationCase) -> None: ...

    @abstractmethod
    def list_cases_awaiting_review(self) -> List[ModerationCase]: ...

    # Content reports
    @abstractmethod
    def get_report(self, report_id: UUID, for_update: bool = False) -> Optional[ContentReport]: ...

    @abstractmethod
    def put_report(self, report: ContentReport) -> None: ...

    @abstractmethod
    def find_report_by_fingerprint(self, fingerprint: str, since: datetime) -> Optional[ContentReport]: ...

    @abstractmethod
    def list_open_reports(self) -> List[ContentReport]: ...

    @abstractmethod
    def list_reports_for_case(self, case_id: UUID) -> List[ContentReport]: ...

    @abstractmethod
    def list_reports_with_open_appeal(self) -> List[ContentReport]: ...

    # User violations
    @abstractmethod
    def get_violation(self, violation_id: UUID, for_update: bool = False) -> Optional[UserViolation]: ...

    @abstractmethod
    def put_violation(self, violation: UserViolation) -> None: ...

    @abstractmethod
    def list_violations_for_user(self, user_id: str) -> List[UserViolation]:
        """All of a user's violations, newest first."""

    @abstractmethod
    def list_violations_for_report(self, report_id: UUID) -> List[UserViolation]: ...

    @abstractmethod
    def list_unexpired_violations(self) -> List[UserViolation]: ...

    @abstractmethod
    def list_violations_with_open_appeal(self) -> List[UserViolation]: ...

    @abstractmethod
    def advisory_lock(self, key: str) -> None:
        """Hold a lock on an arbitrary key until commit."""

    def lock_user(self, user_id: str) -> None:
        """Serialize violation creation for one user until commit."""
        self.advisory_lock(f"user:{user_id}")


class ModerationStore(ABC):

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[Transaction]: ...
