"""
User Violation (strike) data models.
"""

from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from moderation_engine.lib.clock import utcnow
from moderation_engine.models.appeal import Appeal
from moderation_engine.models.content import ContentRef
from moderation_engine.models.enums import (
    AccountStatus, EnforcementType, LadderStep, ReportReason,
    RestrictedFeature, Severity
)


class Restriction(BaseModel):
    feature: RestrictedFeature
    until: datetime


class AccountSanction(BaseModel):
    """Account-level consequence carried by a violation."""
    status: AccountStatus
    until: Optional[datetime] = None  # None = indefinite (ban)


class EnforcementAction(BaseModel):
    type: EnforcementType
    start_date: datetime = Field(default_factory=utcnow)
    end_date: Optional[datetime] = None
    restrictions: List[Restriction] = Field(default_factory=list)
    is_active: bool = True


class UserViolation(BaseModel):
    """
    One adjudicated strike against an account.
    History is immutable: overturning or expiring only flips flags.
    """
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    violation_type: ReportReason
    severity: Severity
    description: str

    related_report_id: Optional[UUID] = None
    related_case_id: Optional[UUID] = None
    content: Optional[ContentRef] = None

    action: EnforcementAction
    strike_count: int = Field(default=1, ge=0)

    # Ladder selection at issue time
    guideline_version: str
    ladder_tier: int = Field(ge=1)
    ladder_step: LadderStep
    rolling_strikes: int = Field(ge=0)
    appealable: bool = True
    account_sanction: Optional[AccountSanction] = None
    sanction_lifted_at: Optional[datetime] = None

    issued_by: str
    issued_by_system: bool = False

    appeal: Optional[Appeal] = None
    appeal_deadline: datetime
    overturned_at: Optional[datetime] = None

    expires_at: Optional[datetime] = None
    is_expired: bool = False

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    @property
    def overturned(self) -> bool:
        return self.overturned_at is not None or (self.appeal is not None and self.appeal.overturned)

    def counts_toward_strikes(self, now: datetime, window_days: int) -> bool:
        """True when this violation belongs to the trailing strike window."""
        if self.is_expired or self.overturned:
            return False
        return self.created_at > now - timedelta(days=window_days)

    def sanction_in_force(self, now: datetime) -> bool:
        """Whether the account sanction still applies at `now` (lazy expiry)."""
        if self.account_sanction is None or not self.action.is_active or self.overturned:
            return False
        if self.expires_at is not None and self.expires_at <= now:
            return False
        until = self.account_sanction.until
        return until is None or until > now
