"""
Actor identity and account standing models.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from moderation_engine.models.enums import AccountStatus, ActorRole
from moderation_engine.models.violation import Restriction


class Actor(BaseModel):
    """Authenticated caller as supplied by the identity service."""
    id: str = Field(min_length=1)
    role: ActorRole = ActorRole.USER
    account_status: AccountStatus = AccountStatus.ACTIVE

    @property
    def is_reviewer(self) -> bool:
        return self.role in (ActorRole.REVIEWER, ActorRole.ADMIN)

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


class AccountStanding(BaseModel):
    """
    Engine-computed enforcement state of an account.
    Computed on every read, so expired sanctions are never reported.
    """
    user_id: str
    status: AccountStatus = AccountStatus.ACTIVE
    until: Optional[datetime] = None
    restrictions: List[Restriction] = Field(default_factory=list)
    active_violation_ids: List[UUID] = Field(default_factory=list)
    rolling_strikes: int = 0
    computed_at: datetime
