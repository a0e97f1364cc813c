"""Request bodies for the moderation API (camelCase on the wire)."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from moderation_engine.models.content import ContentRef
from moderation_engine.models.enums import (
    AppealDecision, CaseDecision, ContentType, ReportAction, ReportPriority, ReportReason
)
from moderation_engine.models.report import Evidence, ReportSubmission


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='forbid')


class ReportCreate(_Body):
    content_type: ContentType = Field(alias='contentType')
    content_id: str = Field(alias='contentId', min_length=1)
    content_owner: str = Field(alias='contentOwner', min_length=1)
    report_reason: ReportReason = Field(alias='reportReason')
    report_subcategory: Optional[str] = Field(default=None, alias='reportSubcategory')
    description: Optional[str] = Field(default=None, max_length=1000)
    evidence: List[Evidence] = Field(default_factory=list)
    priority: Optional[ReportPriority] = None

    def to_submission(self) -> ReportSubmission:
        return ReportSubmission(
            content=ContentRef(content_type=self.content_type, content_id=self.content_id),
            content_owner_id=self.content_owner,
            reason=self.report_reason,
            subcategory=self.report_subcategory,
            description=self.description,
            evidence=self.evidence,
            priority=self.priority,
        )


class ReportReview(_Body):
    action: ReportAction
    reason: str = Field(min_length=1, max_length=2000)
    review_notes: Optional[str] = Field(default=None, alias='reviewNotes', max_length=2000)


class ReportDismiss(_Body):
    reason: str = Field(min_length=1, max_length=2000)


class AppealCreate(_Body):
    reason: str = Field(min_length=1, max_length=2000)


class AppealReview(_Body):
    decision: AppealDecision
    notes: Optional[str] = Field(default=None, max_length=2000)


class ContentModerate(_Body):
    action: str = Field(pattern='^(approve|remove)$')
    reason: Optional[str] = Field(default=None, max_length=2000)


class CaseDecide(_Body):
    decision: CaseDecision
    reason: Optional[str] = Field(default=None, max_length=2000)
