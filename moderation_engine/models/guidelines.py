"""
Community guideline documents.
A published GuidelineVersion is an immutable snapshot; activation only
swaps which snapshot the registry serves.
"""

from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from moderation_engine.models.enums import LadderStep, ReportReason, Severity


class LadderTier(BaseModel):
    """One rung of a category's enforcement ladder (1st, 2nd, 3rd+ offense)."""
    model_config = ConfigDict(frozen=True)

    tier: int = Field(ge=1)
    action: LadderStep
    duration_days: Optional[int] = Field(default=None, ge=0)
    appealable: bool = True
    description: str = ""


class GuidelineCategory(BaseModel):
    """A violation category with its default severity and ordered ladder."""
    model_config = ConfigDict(frozen=True)

    name: ReportReason
    title: str
    description: str = ""
    severity_default: Severity
    examples: Tuple[str, ...] = ()
    ladder: Tuple[LadderTier, ...]

    @field_validator('ladder')
    @classmethod
    def _ladder_is_ordered(cls, ladder: Tuple[LadderTier, ...]) -> Tuple[LadderTier, ...]:
        if not ladder:
            raise ValueError("enforcement ladder must have at least one tier")
        expected = list(range(1, len(ladder) + 1))
        if [t.tier for t in ladder] != expected:
            raise ValueError(f"ladder tiers must be numbered {expected}")
        return ladder


class GuidelineVersion(BaseModel):
    """
    Versioned policy document.
    Exactly one version is active at a time; the registry enforces it.
    """
    model_config = ConfigDict(frozen=True)

    version: str = Field(min_length=1)
    effective_date: datetime
    is_active: bool = False
    categories: Tuple[GuidelineCategory, ...]
    appeal_process: str = ""
    published_at: Optional[datetime] = None

    @field_validator('categories')
    @classmethod
    def _unique_categories(cls, categories: Tuple[GuidelineCategory, ...]) -> Tuple[GuidelineCategory, ...]:
        names = [c.name for c in categories]
        if len(names) != len(set(names)):
            raise ValueError("guideline categories must be unique")
        return categories

    def category(self, name: ReportReason) -> Optional[GuidelineCategory]:
        for category in self.categories:
            if category.name == name:
                return category
        return None
