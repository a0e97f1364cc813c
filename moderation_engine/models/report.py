"""
Content Report data models.
Many reports may point at the same ModerationCase.
"""

import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from moderation_engine.lib.clock import utcnow
from moderation_engine.models.appeal import Appeal
from moderation_engine.models.content import ContentRef, ContentSnapshot
from moderation_engine.models.enums import (
    OPEN_REPORT_STATUSES, ReportAction, ReportPriority, ReportReason, ReportStatus
)


class EvidenceType(str, Enum):
    SCREENSHOT = "screenshot"
    LINK = "link"
    TEXT = "text"


class Evidence(BaseModel):
    type: EvidenceType
    content: Optional[str] = None
    url: Optional[str] = None


class ReportSubmission(BaseModel):
    """What a reporter sends; the engine fills in everything else."""
    content: ContentRef
    content_owner_id: str = Field(min_length=1)
    reason: ReportReason
    subcategory: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    evidence: List[Evidence] = Field(default_factory=list)
    priority: Optional[ReportPriority] = None

    def fingerprint(self, reporter_id: str) -> str:
        """Stable hash of the payload, used to absorb network retries."""
        payload = self.model_dump(mode='json', exclude={'priority'})
        payload['reporter_id'] = reporter_id
        encoded = json.dumps(payload, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(encoded.encode('utf-8')).hexdigest()


class ReportDecision(BaseModel):
    """Reviewer resolution of a report."""
    action: ReportAction
    reason: str
    reviewer_id: str
    action_taken_at: datetime
    appeal_deadline: datetime
    legal_reference: Optional[str] = None
    overturned: bool = False


class ContentReport(BaseModel):
    """
    A single user-submitted report.
    The snapshot is frozen at creation time.
    """
    id: UUID = Field(default_factory=uuid4)
    reporter_id: str
    content: ContentRef
    content_owner_id: str
    snapshot: ContentSnapshot
    case_id: UUID

    reason: ReportReason
    subcategory: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    evidence: List[Evidence] = Field(default_factory=list)

    status: ReportStatus = ReportStatus.PENDING
    priority: ReportPriority = ReportPriority.MEDIUM

    reviewer_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    decision: Optional[ReportDecision] = None
    appeal: Optional[Appeal] = None

    # Retry-idempotency fingerprint of the submitted payload
    fingerprint: str

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_REPORT_STATUSES
