"""
Appeal sub-record shared by report decisions and user violations.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from moderation_engine.lib.clock import utcnow
from moderation_engine.models.enums import AppealDecision, AppealStatus


class Appeal(BaseModel):
    """One appeal per decision; filed by the affected user only."""
    appellant_id: str
    reason: str = Field(min_length=1, max_length=2000)
    status: AppealStatus = AppealStatus.PENDING
    appealed_at: datetime = Field(default_factory=utcnow)

    reviewer_id: Optional[str] = None
    decision: Optional[AppealDecision] = None
    notes: Optional[str] = None
    decided_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status in (AppealStatus.PENDING, AppealStatus.UNDER_REVIEW)

    @property
    def overturned(self) -> bool:
        return self.status == AppealStatus.OVERTURNED
