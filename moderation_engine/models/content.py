"""
Content references and Moderation Case data models.
A ModerationCase is the single source of truth for a content item's visibility.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from moderation_engine.lib.clock import utcnow
from moderation_engine.models.enums import (
    CaseActionType, CaseDecision, CaseStatus, ContentType,
    Recommendation, Visibility
)


class ContentRef(BaseModel):
    """Pointer to an item held by one of the content stores."""
    model_config = ConfigDict(frozen=True)

    content_type: ContentType
    content_id: str = Field(min_length=1)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.content_type.value, self.content_id)


class ContentSnapshot(BaseModel):
    """
    Copy of the content captured at report time.
    Later edits or deletion of the source never change it.
    """
    model_config = ConfigDict(frozen=True)

    text: Optional[str] = None
    media_urls: Tuple[str, ...] = ()
    content_created_at: Optional[datetime] = None
    captured_at: datetime = Field(default_factory=utcnow)
    source_available: bool = True


class ScoreResult(BaseModel):
    """Output of the risk scorer."""
    signals: Dict[str, float] = Field(default_factory=dict)
    risk_score: int = Field(ge=0, le=100, default=0)
    recommendation: Recommendation = Recommendation.APPROVE
    degraded: bool = False
    failed_detectors: List[str] = Field(default_factory=list)
    scored_at: datetime = Field(default_factory=utcnow)


class HumanReview(BaseModel):
    required: bool = False
    reviewed: bool = False
    reviewer_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    decision: Optional[CaseDecision] = None
    reason: Optional[str] = None


class CaseAction(BaseModel):
    """Append-only audit entry on a case."""
    action: CaseActionType
    reason: Optional[str] = None
    actor: str
    taken_at: datetime = Field(default_factory=utcnow)


class ModerationCase(BaseModel):
    """
    One per (content_type, content_id).
    Never hard-deleted; status and visibility move together.
    """
    id: UUID = Field(default_factory=uuid4)
    content: ContentRef
    owner_id: str

    # Automated scoring
    automated_signals: Dict[str, float] = Field(default_factory=dict)
    risk_score: Optional[int] = Field(default=None, ge=0, le=100)
    recommendation: Optional[Recommendation] = None
    scoring_degraded: bool = False
    scored_at: Optional[datetime] = None

    # Human review
    human_review: HumanReview = Field(default_factory=HumanReview)

    # Final state
    status: CaseStatus = CaseStatus.PENDING
    visibility: Visibility = Visibility.PUBLIC
    age_restricted: bool = False
    actions_taken: List[CaseAction] = Field(default_factory=list)

    # Timestamps / concurrency
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    @property
    def is_scored(self) -> bool:
        return self.scored_at is not None

    @property
    def awaiting_review(self) -> bool:
        return self.human_review.required and not self.human_review.reviewed

    def record_action(self, action: CaseActionType, actor: str,
                      reason: Optional[str] = None, at: Optional[datetime] = None) -> None:
        self.actions_taken.append(CaseAction(
            action=action, reason=reason, actor=actor, taken_at=at or utcnow()
        ))
