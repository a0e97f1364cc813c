"""
Post-commit delivery of outbound messages.
A failed delivery never undoes the committed decision; the message goes
to the dead-letter queue instead.
"""

import logging
from typing import Iterable, Optional

from moderation_engine.lib.metrics import MetricsExporter
from moderation_engine.models.events import (
    AccountStatusInstruction, EngineEvent, OutboundMessage, VisibilityInstruction
)
from moderation_engine.services.collaborators import (
    ContentStoreGateway, IdentityGateway, InMemoryDeadLetters, NotificationSink
)

logger = logging.getLogger(__name__)


class Dispatcher:

    def __init__(self,
                 content_store: ContentStoreGateway,
                 identity: IdentityGateway,
                 notifications: NotificationSink,
                 dead_letters=None):
        self.content_store = content_store
        self.identity = identity
        self.notifications = notifications
        # Anything with MessageBroker.publish_dlq's signature
        self.dead_letters = dead_letters if dead_letters is not None else InMemoryDeadLetters()

    def deliver(self, messages: Iterable[OutboundMessage]) -> int:
        """Deliver in order; returns the number of failed messages."""
        failures = 0
        for message in messages:
            error = self._deliver_one(message)
            if error is not None:
                failures += 1
                MetricsExporter.record_delivery_failure(message.kind)
                self.dead_letters.publish_dlq(message.model_dump(mode='json'), error)
        return failures

    def _deliver_one(self, message: OutboundMessage) -> Optional[str]:
        try:
            if isinstance(message, VisibilityInstruction):
                self.content_store.set_visibility(message)
            elif isinstance(message, AccountStatusInstruction):
                self.identity.apply_account_status(message)
            elif isinstance(message, EngineEvent):
                self.notifications.publish(message)
            else:
                raise TypeError(f"Unknown outbound message {type(message).__name__}")
        except Exception as e:
            logger.warning(f"Delivery of {message.kind} message failed: {e}")
            return str(e)
        return None
