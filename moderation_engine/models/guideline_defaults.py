"""
Seed community guideline document (version 1.0.0).
Published by the registry on first start when no version exists.
"""

from datetime import datetime, timezone

from moderation_engine.models.enums import LadderStep, ReportReason, Severity
from moderation_engine.models.guidelines import GuidelineCategory, GuidelineVersion, LadderTier


def _ladder(*steps):
    """Build tiers 1..n from (action, duration_days, description[, appealable]) tuples."""
    tiers = []
    for index, step in enumerate(steps, start=1):
        action, duration, description = step[:3]
        appealable = step[3] if len(step) > 3 else True
        tiers.append(LadderTier(
            tier=index,
            action=action,
            duration_days=duration,
            appealable=appealable,
            description=description,
        ))
    return tuple(tiers)


DEFAULT_CATEGORIES = (
    GuidelineCategory(
        name=ReportReason.VIOLENCE_CRIMINAL,
        title="Violence and Criminal Behavior",
        description="Language that incites or facilitates serious violence, or coordinates crime.",
        severity_default=Severity.CRITICAL,
        examples=(
            "Threats of physical harm against individuals or groups",
            "Instructions on how to make weapons",
            "Organizing illegal activities",
        ),
        ladder=_ladder(
            (LadderStep.CONTENT_REMOVAL, 0, "Content removed immediately. User receives warning."),
            (LadderStep.TEMPORARY_RESTRICTION, 7, "Content removed. Posting restricted for 7 days."),
            (LadderStep.TEMPORARY_BAN, 30, "Account suspended for 30 days."),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.HATE_SPEECH,
        title="Hate Speech and Discrimination",
        description="Attacks on people based on protected characteristics.",
        severity_default=Severity.CRITICAL,
        examples=(
            "Dehumanizing speech about a protected group",
            "Promoting hate organizations",
        ),
        ladder=_ladder(
            (LadderStep.CONTENT_REMOVAL, 0, "Content removed. Warning and educational resources."),
            (LadderStep.TEMPORARY_RESTRICTION, 14, "Posting restricted for 14 days."),
            (LadderStep.PERMANENT_BAN, None, "Account permanently disabled."),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.HARASSMENT_BULLYING,
        title="Bullying and Harassment",
        description="Targeted harassment, cyberbullying and doxxing.",
        severity_default=Severity.HIGH,
        examples=(
            "Repeated unwanted contact",
            "Sharing someone's home address to intimidate them",
        ),
        ladder=_ladder(
            (LadderStep.WARNING, 0, "User receives warning. Content may be removed."),
            (LadderStep.TEMPORARY_RESTRICTION, 7, "Commenting and messaging restricted for 7 days."),
            (LadderStep.TEMPORARY_BAN, 30, "Account suspended for 30 days."),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.SPAM,
        title="Spam and Fake Engagement",
        description="Spam behavior and artificially inflated engagement.",
        severity_default=Severity.MEDIUM,
        examples=(
            "Repetitive unsolicited promotion",
            "Buying likes or followers",
        ),
        ladder=_ladder(
            (LadderStep.CONTENT_REMOVAL, 0, "Spam content removed. User warned."),
            (LadderStep.TEMPORARY_RESTRICTION, 3, "Posting restricted for 3 days."),
            (LadderStep.PERMANENT_BAN, None, "Account permanently disabled for repeated spam."),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.MISINFORMATION,
        title="Misinformation and False News",
        description="Harmful misinformation and impersonation of news organizations.",
        severity_default=Severity.HIGH,
        examples=(
            "Fabricated health claims",
            "Accounts posing as news outlets",
        ),
        ladder=_ladder(
            (LadderStep.WARNING, 0, "Content labeled as false information. Reach reduced."),
            (LadderStep.CONTENT_REMOVAL, 0, "Content removed. User warned about repeated violations."),
            (LadderStep.TEMPORARY_RESTRICTION, 30, "Posting restricted for 30 days."),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.ADULT_CONTENT,
        title="Adult Content and Nudity",
        description="Sexual content and nudity outside the allowed exceptions.",
        severity_default=Severity.HIGH,
        examples=(
            "Sexually explicit images",
            "Solicitation of sexual content",
        ),
        ladder=_ladder(
            (LadderStep.CONTENT_REMOVAL, 0, "Content removed. User receives warning."),
            (LadderStep.TEMPORARY_RESTRICTION, 14, "Media posting restricted for 14 days."),
            (LadderStep.PERMANENT_BAN, None, "Account permanently disabled."),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.PRIVACY_VIOLATION,
        title="Privacy and Personal Information",
        description="Sharing private contact, financial or personal information.",
        severity_default=Severity.CRITICAL,
        examples=(
            "Posting someone's phone number",
            "Sharing bank account details",
        ),
        ladder=_ladder(
            (LadderStep.CONTENT_REMOVAL, 0, "Content removed. User receives warning."),
            (LadderStep.TEMPORARY_RESTRICTION, 7, "Posting restricted for 7 days."),
            (LadderStep.TEMPORARY_BAN, 30, "Account suspended for 30 days."),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.INTELLECTUAL_PROPERTY,
        title="Intellectual Property",
        description="Copyright and trademark infringement. Legal takedowns follow the legal policy.",
        severity_default=Severity.MEDIUM,
        examples=(
            "Reposting copyrighted video without permission",
            "Counterfeit goods using a trademark",
        ),
        ladder=_ladder(
            (LadderStep.CONTENT_REMOVAL, 0, "Content removed."),
            (LadderStep.CONTENT_REMOVAL, 0, "Content removed. Final warning."),
            (LadderStep.TEMPORARY_RESTRICTION, 30, "Posting restricted for 30 days."),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.IMPERSONATION,
        title="Authenticity and Identity",
        description="Impersonation and coordinated inauthentic behavior.",
        severity_default=Severity.HIGH,
        examples=(
            "Pretending to be another person",
            "Networks of fake accounts",
        ),
        ladder=_ladder(
            (LadderStep.WARNING, 0, "User receives warning."),
            (LadderStep.TEMPORARY_BAN, 7, "Account suspended for 7 days."),
            (LadderStep.PERMANENT_BAN, None, "Account permanently disabled."),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.SELF_HARM,
        title="Safety and Harmful Content",
        description="Content promoting suicide, self-injury or eating disorders.",
        severity_default=Severity.CRITICAL,
        examples=(
            "Instructions on self-harm methods",
            "Pro-eating-disorder content",
        ),
        ladder=_ladder(
            (LadderStep.CONTENT_REMOVAL, 0, "Content removed. Support resources shared."),
            (LadderStep.CONTENT_REMOVAL, 0, "Content removed. Support resources shared."),
            (LadderStep.TEMPORARY_RESTRICTION, 7, "Posting restricted for 7 days."),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.TERRORISM,
        title="Dangerous Organizations",
        description="Praise, support or recruitment for terrorist organizations.",
        severity_default=Severity.CRITICAL,
        examples=(
            "Recruitment for violent extremist groups",
            "Praise of a terrorist attack",
        ),
        ladder=_ladder(
            (LadderStep.PERMANENT_BAN, None, "Account permanently disabled."),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.CHILD_SAFETY,
        title="Child Safety",
        description="Any content that sexualizes or endangers minors.",
        severity_default=Severity.CRITICAL,
        examples=(
            "Sexualization of minors",
        ),
        ladder=_ladder(
            (LadderStep.PERMANENT_BAN, None, "Account permanently disabled.", False),
        ),
    ),
    GuidelineCategory(
        name=ReportReason.OTHER,
        title="Other Community Standards",
        description="Violations of the terms of service not covered above.",
        severity_default=Severity.LOW,
        ladder=_ladder(
            (LadderStep.WARNING, 0, "User receives warning."),
            (LadderStep.TEMPORARY_RESTRICTION, 3, "Posting restricted for 3 days."),
            (LadderStep.TEMPORARY_BAN, 7, "Account suspended for 7 days."),
        ),
    ),
)


DEFAULT_APPEAL_PROCESS = (
    "If you believe we made a mistake, you can request a review of our decision "
    "within 30 days. Most appeals are reviewed within 24-48 hours."
)


def default_guidelines() -> GuidelineVersion:
    return GuidelineVersion(
        version="1.0.0",
        effective_date=datetime(2025, 1, 1, tzinfo=timezone.utc),
        categories=DEFAULT_CATEGORIES,
        appeal_process=DEFAULT_APPEAL_PROCESS,
    )
