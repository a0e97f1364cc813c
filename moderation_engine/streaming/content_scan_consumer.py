"""
Kafka consumer for automated first scans of newly created content.

Message shape on `content-created`:
    {"content_type": "post", "content_id": "...", "user_id": "...",
     "text_content": "...", "media_urls": [...], "created_at": "..."}
"""
import asyncio
import logging
from typing import Any, Dict

from moderation_engine.lib.kafka_client import MessageBroker
from moderation_engine.models.content import ContentRef, ContentSnapshot
from moderation_engine.models.enums import ContentType
from moderation_engine.services.engine import ModerationEngine

logger = logging.getLogger(__name__)


class ContentScanConsumer:
    """Scores every new item so high-risk content reaches review unreported."""

    def __init__(self, engine: ModerationEngine, broker: MessageBroker):
        self.engine = engine
        self.broker = broker

    def handle(self, message: Dict[str, Any]) -> None:
        """Raises on malformed input; the broker loop dead-letters it."""
        ref = ContentRef(
            content_type=ContentType(str(message['content_type'])),
            content_id=str(message['content_id']),
        )
        owner_id = str(message.get('user_id') or message['owner_id'])
        snapshot = ContentSnapshot(
            text=message.get('text_content'),
            media_urls=tuple(message.get('media_urls') or ()),
            content_created_at=message.get('created_at'),
            captured_at=self.engine.clock(),
        )
        case = asyncio.run(self.engine.cases.scan_content(ref, owner_id, snapshot))
        logger.debug(f"Content {ref.content_id} scanned into case {case.id}")

    def run(self) -> None:
        logger.info("Starting content scan consumer...")
        self.broker.consume_content_created(self.handle)
