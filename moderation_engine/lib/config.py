"""
Engine configuration loaded from environment variables.
"""
import os
import logging
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, Field, model_validator

from moderation_engine.models.enums import ReportReason

logger = logging.getLogger(__name__)


DEFAULT_HARD_ESCALATION = frozenset({
    ReportReason.TERRORISM,
    ReportReason.CHILD_SAFETY,
    ReportReason.SELF_HARM,
})

DEFAULT_SIGNAL_WEIGHTS = {
    'toxicity': 1.0,
    'violence': 1.0,
    'nudity': 1.0,
    'spam': 0.5,
    'self_harm': 1.0,
}


class EngineSettings(BaseModel):
    """
    Tunable constants for scoring, escalation, strikes and appeals.
    Only the relative ordering of the thresholds is enforced.
    """
    # Report intake
    hard_escalation_reasons: FrozenSet[ReportReason] = DEFAULT_HARD_ESCALATION
    dedupe_window_seconds: int = Field(default=60, ge=0)

    # Risk scoring
    signal_hard_threshold: float = Field(default=0.85, gt=0.0, le=1.0)
    remove_threshold: int = 85
    review_threshold: int = 40
    warn_threshold: int = 15
    human_review_threshold: int = Field(default=40, ge=0, le=100)
    signal_weights: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_SIGNAL_WEIGHTS))
    scorer_timeout_seconds: float = Field(default=2.0, gt=0.0)

    # Enforcement
    strike_window_days: int = Field(default=90, gt=0)
    appeal_window_days: int = Field(default=30, gt=0)
    suspension_days: int = Field(default=30, gt=0)
    restriction_days: int = Field(default=7, gt=0)
    sweep_interval_seconds: int = Field(default=300, gt=0)

    # Infrastructure
    database_url: Optional[str] = None
    kafka_bootstrap_servers: Optional[str] = None
    content_store_url: Optional[str] = None
    metrics_port: int = 8000

    @model_validator(mode='after')
    def _check_threshold_order(self) -> 'EngineSettings':
        if not 0 < self.warn_threshold < self.review_threshold < self.remove_threshold <= 100:
            raise ValueError(
                "thresholds must satisfy 0 < warn < review < remove <= 100, got "
                f"{self.warn_threshold}/{self.review_threshold}/{self.remove_threshold}"
            )
        if any(w < 0 for w in self.signal_weights.values()):
            raise ValueError("signal weights must be non-negative")
        return self

    @classmethod
    def from_env(cls) -> 'EngineSettings':
        """Build settings from MODERATION_* and infrastructure env vars."""
        values: Dict[str, object] = {}

        reasons = os.getenv('MODERATION_HARD_ESCALATION')
        if reasons:
            values['hard_escalation_reasons'] = frozenset(
                ReportReason(r.strip()) for r in reasons.split(',') if r.strip()
            )

        weights = os.getenv('MODERATION_SIGNAL_WEIGHTS')
        if weights:
            parsed = {}
            for pair in weights.split(','):
                name, _, weight = pair.partition(':')
                parsed[name.strip()] = float(weight)
            values['signal_weights'] = parsed

        env_map = {
            'MODERATION_DEDUPE_WINDOW_SECONDS': ('dedupe_window_seconds', int),
            'MODERATION_SIGNAL_HARD_THRESHOLD': ('signal_hard_threshold', float),
            'MODERATION_REMOVE_THRESHOLD': ('remove_threshold', int),
            'MODERATION_REVIEW_THRESHOLD': ('review_threshold', int),
            'MODERATION_WARN_THRESHOLD': ('warn_threshold', int),
            'MODERATION_HUMAN_REVIEW_THRESHOLD': ('human_review_threshold', int),
            'MODERATION_SCORER_TIMEOUT_SECONDS': ('scorer_timeout_seconds', float),
            'MODERATION_STRIKE_WINDOW_DAYS': ('strike_window_days', int),
            'MODERATION_APPEAL_WINDOW_DAYS': ('appeal_window_days', int),
            'MODERATION_SUSPENSION_DAYS': ('suspension_days', int),
            'MODERATION_RESTRICTION_DAYS': ('restriction_days', int),
            'MODERATION_SWEEP_INTERVAL_SECONDS': ('sweep_interval_seconds', int),
            'METRICS_PORT': ('metrics_port', int),
        }
        for env_name, (field_name, cast) in env_map.items():
            raw = os.getenv(env_name)
            if raw is not None and raw != '':
                values[field_name] = cast(raw)

        values['database_url'] = os.getenv('DATABASE_URL') or None
        values['kafka_bootstrap_servers'] = os.getenv('KAFKA_BOOTSTRAP_SERVERS') or None
        values['content_store_url'] = os.getenv('CONTENT_STORE_URL') or None

        settings = cls(**values)
        logger.info(
            f"Engine settings loaded: thresholds={settings.warn_threshold}/"
            f"{settings.review_threshold}/{settings.remove_threshold}, "
            f"strike window={settings.strike_window_days}d"
        )
        return settings
