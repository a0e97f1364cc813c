"""
Error taxonomy for engine operations.
Every error carries a stable code and a user-safe message.
"""
from typing import Any, Dict, Optional


class ModerationError(Exception):
    """Base class for all engine errors."""
    code = "moderation_error"

    def __init__(self, message: str, current_state: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.current_state = current_state

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "code": self.code,
            "message": self.message,
        }
        if self.current_state is not None:
            body["state"] = self.current_state
        return body


class NotFound(ModerationError):
    code = "not_found"


class Conflict(ModerationError):
    code = "conflict"


class AlreadyDecided(Conflict):
    code = "already_decided"


class AlreadyAppealed(Conflict):
    code = "already_appealed"


class DuplicateVersion(Conflict):
    code = "duplicate_version"


class NotAuthorized(ModerationError):
    code = "not_authorized"


class InvalidTransition(ModerationError):
    code = "invalid_transition"


class DeadlineExpired(InvalidTransition):
    code = "deadline_expired"


class NotAppealable(InvalidTransition):
    code = "not_appealable"


class InvalidAction(ModerationError):
    code = "invalid_action"


class UpstreamDegraded(ModerationError):
    """Raised by detectors; always absorbed by the risk scorer."""
    code = "upstream_degraded"
