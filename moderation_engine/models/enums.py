"""
Enumeration definitions for the Content Moderation & Enforcement Engine.
Closed vocabularies for reports, cases, violations and appeals.
"""

from enum import Enum


class ContentType(str, Enum):
    """Types of content the engine can moderate."""
    POST = "post"
    COMMENT = "comment"
    MESSAGE = "message"
    STORY = "story"
    USER_PROFILE = "user_profile"
    CONVERSATION = "conversation"


class ReportReason(str, Enum):
    """Report categories. Mirrors the guideline categories."""
    VIOLENCE_CRIMINAL = "violence_criminal"
    HATE_SPEECH = "hate_speech"
    HARASSMENT_BULLYING = "harassment_bullying"
    SPAM = "spam"
    MISINFORMATION = "misinformation"
    ADULT_CONTENT = "adult_content"
    PRIVACY_VIOLATION = "privacy_violation"
    INTELLECTUAL_PROPERTY = "intellectual_property"
    IMPERSONATION = "impersonation"
    SELF_HARM = "self_harm"
    TERRORISM = "terrorism"
    CHILD_SAFETY = "child_safety"
    OTHER = "other"


class Severity(str, Enum):
    """Violation severity. Ordered low -> critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class ReportPriority(str, Enum):
    """Review priority for reports. Critical is reserved for hard escalations."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    ReportPriority.LOW: 1,
    ReportPriority.MEDIUM: 2,
    ReportPriority.HIGH: 3,
    ReportPriority.CRITICAL: 4,
}


class ReportStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"
    ESCALATED = "escalated"


OPEN_REPORT_STATUSES = frozenset({
    ReportStatus.PENDING,
    ReportStatus.UNDER_REVIEW,
    ReportStatus.ESCALATED,
})


class ReportAction(str, Enum):
    """Reviewer decision on a report."""
    NO_ACTION = "no_action"
    CONTENT_REMOVED = "content_removed"
    CONTENT_WARNING_ADDED = "content_warning_added"
    USER_WARNED = "user_warned"
    USER_RESTRICTED = "user_restricted"
    USER_SUSPENDED = "user_suspended"
    USER_BANNED = "user_banned"
    ESCALATED_TO_LEGAL = "escalated_to_legal"


PUNITIVE_ACTIONS = frozenset({
    ReportAction.CONTENT_REMOVED,
    ReportAction.USER_WARNED,
    ReportAction.USER_RESTRICTED,
    ReportAction.USER_SUSPENDED,
    ReportAction.USER_BANNED,
})


class EnforcementType(str, Enum):
    """Account-level enforcement recorded on a violation."""
    WARNING = "warning"
    CONTENT_REMOVAL = "content_removal"
    FEATURE_RESTRICTION = "feature_restriction"
    TEMPORARY_SUSPENSION = "temporary_suspension"
    PERMANENT_BAN = "permanent_ban"


class LadderStep(str, Enum):
    """Response named by a guideline enforcement ladder tier."""
    WARNING = "warning"
    CONTENT_REMOVAL = "content_removal"
    TEMPORARY_RESTRICTION = "temporary_restriction"
    TEMPORARY_BAN = "temporary_ban"
    PERMANENT_BAN = "permanent_ban"


class RestrictedFeature(str, Enum):
    POSTING = "posting"
    COMMENTING = "commenting"
    MESSAGING = "messaging"
    STORY_CREATION = "story_creation"
    LIVE_STREAMING = "live_streaming"
    ALL = "all"


class Recommendation(str, Enum):
    """Automated recommendation from the risk scorer."""
    APPROVE = "approve"
    REVIEW = "review"
    REMOVE = "remove"
    WARN = "warn"


class CaseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    FLAGGED = "flagged"
    REMOVED = "removed"
    UNDER_REVIEW = "under_review"


class Visibility(str, Enum):
    PUBLIC = "public"
    LIMITED = "limited"
    HIDDEN = "hidden"
    REMOVED = "removed"


class CaseDecision(str, Enum):
    """Human decision on a moderation case."""
    APPROVED = "approved"
    REMOVED = "removed"
    WARNING_ADDED = "warning_added"
    AGE_RESTRICTED = "age_restricted"
    REQUIRES_CONTEXT = "requires_context"


class CaseActionType(str, Enum):
    """Entries of the per-case audit log."""
    CONTENT_REMOVED = "content_removed"
    CONTENT_RESTORED = "content_restored"
    CONTENT_BLURRED = "content_blurred"
    WARNING_LABEL_ADDED = "warning_label_added"
    AGE_RESTRICTED = "age_restricted"
    REACH_LIMITED = "reach_limited"
    REVIEW_STARTED = "review_started"
    AUTOMATED_SCORE = "automated_score"
    NO_ACTION = "no_action"


class AppealStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    UPHELD = "upheld"
    OVERTURNED = "overturned"


class AppealDecision(str, Enum):
    UPHELD = "upheld"
    OVERTURNED = "overturned"


class AppealTarget(str, Enum):
    """What an appeal is filed against."""
    REPORT = "report"
    VIOLATION = "violation"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"


class ActorRole(str, Enum):
    USER = "user"
    REVIEWER = "reviewer"
    ADMIN = "admin"


class EventType(str, Enum):
    """Notification events emitted for downstream delivery."""
    REPORT_RECEIVED = "report_received"
    REPORT_ESCALATED = "report_escalated"
    REPORT_RESOLVED = "report_resolved"
    REPORT_DISMISSED = "report_dismissed"
    CONTENT_DECIDED = "content_decided"
    STRIKE_ISSUED = "strike_issued"
    ACCOUNT_STATUS_CHANGED = "account_status_changed"
    APPEAL_FILED = "appeal_filed"
    APPEAL_UPHELD = "appeal_upheld"
    APPEAL_OVERTURNED = "appeal_overturned"
    ENFORCEMENT_REVERSED = "enforcement_reversed"
    VIOLATION_EXPIRED = "violation_expired"
