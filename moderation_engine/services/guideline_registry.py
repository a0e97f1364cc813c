"""
Guideline Registry - versioned community guidelines.

Published versions are immutable. Exactly one version is active; the
active document is cached in memory and reloaded only when the store
reports a different active version id.
"""

import logging
import threading
from typing import List, Optional, Tuple

from moderation_engine.lib.clock import Clock, utcnow
from moderation_engine.lib.errors import DuplicateVersion, NotFound
from moderation_engine.lib.store import ModerationStore, Transaction
from moderation_engine.models.enums import ReportReason, Severity
from moderation_engine.models.guideline_defaults import default_guidelines
from moderation_engine.models.guidelines import GuidelineCategory, GuidelineVersion, LadderTier

logger = logging.getLogger(__name__)


class GuidelineRegistry:

    def __init__(self, store: ModerationStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock
        self._cache: Optional[GuidelineVersion] = None
        self._lock = threading.Lock()

    def get_active_version(self, tx: Optional[Transaction] = None) -> GuidelineVersion:
        """Return the active version, reading through the cache."""
        if tx is not None:
            return self._active_in(tx)
        with self.store.transaction() as tx:
            return self._active_in(tx)

    def _active_in(self, tx: Transaction) -> GuidelineVersion:
        active_id = tx.get_active_guideline_id()
        if active_id is None:
            raise NotFound("No active guideline version")
        cached = self._cache
        if cached is not None and cached.version == active_id:
            return cached
        guideline = tx.get_guideline(active_id)
        if guideline is None:
            raise NotFound(f"Guideline version {active_id} not found")
        with self._lock:
            self._cache = guideline
        logger.info(f"Guideline cache loaded version {active_id}")
        return guideline

    def publish(self, guideline: GuidelineVersion, activate: bool = True) -> GuidelineVersion:
        """
        Store a new immutable version. By default it also becomes the
        active one, deactivating the prior version in the same transaction.
        """
        published = guideline.model_copy(update={
            'is_active': False,
            'published_at': guideline.published_at or self.clock(),
        })
        with self.store.transaction() as tx:
            tx.insert_guideline(published)
            if activate:
                tx.set_active_guideline(published.version)
                published = tx.get_guideline(published.version)
        if activate:
            with self._lock:
                self._cache = published
        logger.info(f"Guideline version {published.version} published (active={activate})")
        return published

    def activate(self, version: str) -> GuidelineVersion:
        with self.store.transaction() as tx:
            tx.set_active_guideline(version)
            activated = tx.get_guideline(version)
        with self._lock:
            self._cache = activated
        logger.info(f"Guideline version {version} activated")
        return activated

    def get_version(self, version: str) -> GuidelineVersion:
        with self.store.transaction() as tx:
            guideline = tx.get_guideline(version)
        if guideline is None:
            raise NotFound(f"Guideline version {version} not found")
        return guideline

    def list_versions(self) -> List[GuidelineVersion]:
        with self.store.transaction() as tx:
            return tx.list_guidelines()

    def category_for(self, guideline: GuidelineVersion, name: ReportReason) -> GuidelineCategory:
        """Category entry, falling back to `other` for uncovered reasons."""
        category = guideline.category(name) or guideline.category(ReportReason.OTHER)
        if category is None:
            raise NotFound(f"Guideline {guideline.version} has no category {name.value}")
        return category

    def ladder_for(self, category: ReportReason, tx: Optional[Transaction] = None) -> Tuple[LadderTier, ...]:
        return self.category_for(self.get_active_version(tx), category).ladder

    def severity_of(self, category: ReportReason, tx: Optional[Transaction] = None) -> Severity:
        return self.category_for(self.get_active_version(tx), category).severity_default

    def ensure_seeded(self) -> GuidelineVersion:
        """Publish the built-in document when no version is active yet."""
        with self.store.transaction() as tx:
            active_id = tx.get_active_guideline_id()
        if active_id is not None:
            return self.get_active_version()
        seed = default_guidelines()
        try:
            return self.publish(seed)
        except DuplicateVersion:
            # Another process seeded first, or the seed exists but is inactive
            logger.info(f"Seed guideline {seed.version} already present")
            with self.store.transaction() as tx:
                if tx.get_active_guideline_id() is None:
                    tx.set_active_guideline(seed.version)
            return self.get_active_version()
