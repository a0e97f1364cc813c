"""
Periodic expiry sweep. Reads already apply expiry lazily; the sweep
persists the flags and tells the identity service about lapsed
suspensions.
"""

import logging
import threading
from typing import Optional

from moderation_engine.lib.errors import ModerationError
from moderation_engine.services.enforcement_service import EnforcementService, SweepResult

logger = logging.getLogger(__name__)


class ExpirySweeper:

    def __init__(self, enforcement: EnforcementService, interval_seconds: int = 300):
        self.enforcement = enforcement
        self.interval_seconds = interval_seconds

    def run_once(self) -> Optional[SweepResult]:
        try:
            return self.enforcement.expire_due()
        except ModerationError as e:
            # Concurrent update on a violation; the next pass picks it up
            logger.warning(f"Expiry sweep skipped: {e.message}")
            return None

    def run_forever(self, stop_event: threading.Event) -> None:
        logger.info(f"Expiry sweeper started (every {self.interval_seconds}s)")
        while not stop_event.is_set():
            self.run_once()
            stop_event.wait(self.interval_seconds)
        logger.info("Expiry sweeper stopped")
