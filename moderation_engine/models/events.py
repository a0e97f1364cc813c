"""
Outbound messages from the engine to its collaborators.
Queued inside a transaction and delivered only after commit.
"""

from datetime import datetime
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field

from moderation_engine.lib.clock import utcnow
from moderation_engine.models.enums import AccountStatus, ContentType, EventType, Visibility


class VisibilityInstruction(BaseModel):
    """Tell a content store to show, limit, hide or remove an item."""
    kind: Literal['visibility'] = 'visibility'
    content_type: ContentType
    content_id: str
    visibility: Visibility


class AccountStatusInstruction(BaseModel):
    """Tell the identity service to change an account's status."""
    kind: Literal['account_status'] = 'account_status'
    user_id: str
    status: AccountStatus
    until: Optional[datetime] = None


class EngineEvent(BaseModel):
    """Notification event for every decision, strike and appeal outcome."""
    kind: Literal['event'] = 'event'
    user_id: str
    event_type: EventType
    payload: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=utcnow)


OutboundMessage = Union[VisibilityInstruction, AccountStatusInstruction, EngineEvent]
