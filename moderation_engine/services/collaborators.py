"""
Outbound gateways to the systems the engine does not own: content stores,
the identity/session service and the notification service.

Each gateway has an in-process implementation (used by tests and
single-node deployments) and a networked one (Kafka or HTTP).
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from moderation_engine.lib.errors import UpstreamDegraded
from moderation_engine.lib.kafka_client import MessageBroker
from moderation_engine.models.content import ContentRef, ContentSnapshot
from moderation_engine.models.enums import Visibility
from moderation_engine.models.events import (
    AccountStatusInstruction, EngineEvent, VisibilityInstruction
)

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Contracts
# ----------------------------------------------------------------------

class ContentStoreGateway(ABC):
    """Supplies content snapshots and accepts visibility instructions."""

    @abstractmethod
    async def fetch_snapshot(self, ref: ContentRef, captured_at: datetime) -> Optional[ContentSnapshot]:
        """
        Copy the current content. Returns None when the item does not exist;
        raises UpstreamDegraded when the store cannot be reached.
        """

    @abstractmethod
    def set_visibility(self, instruction: VisibilityInstruction) -> None: ...


class IdentityGateway(ABC):

    @abstractmethod
    def apply_account_status(self, instruction: AccountStatusInstruction) -> None: ...


class NotificationSink(ABC):

    @abstractmethod
    def publish(self, event: EngineEvent) -> None: ...


# ----------------------------------------------------------------------
# In-process implementations
# ----------------------------------------------------------------------

class InMemoryContentStore(ContentStoreGateway):
    """Content items kept in a dictionary; `unavailable` simulates an outage."""

    def __init__(self):
        self.items: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.visibility: Dict[Tuple[str, str], Visibility] = {}
        self.unavailable = False

    def put(self, ref: ContentRef, text: Optional[str] = None,
            media_urls: Tuple[str, ...] = (), created_at: Optional[datetime] = None) -> None:
        self.items[ref.key] = {
            'text': text,
            'media_urls': tuple(media_urls),
            'created_at': created_at,
        }

    def delete(self, ref: ContentRef) -> None:
        self.items.pop(ref.key, None)

    async def fetch_snapshot(self, ref: ContentRef, captured_at: datetime) -> Optional[ContentSnapshot]:
        if self.unavailable:
            raise UpstreamDegraded("Content store unavailable")
        item = self.items.get(ref.key)
        if item is None:
            return None
        return ContentSnapshot(
            text=item['text'],
            media_urls=item['media_urls'],
            content_created_at=item['created_at'],
            captured_at=captured_at,
        )

    def set_visibility(self, instruction: VisibilityInstruction) -> None:
        if self.unavailable:
            raise UpstreamDegraded("Content store unavailable")
        key = (instruction.content_type.value, instruction.content_id)
        self.visibility[key] = instruction.visibility
        logger.info(f"Visibility of {key[0]}/{key[1]} set to {instruction.visibility.value}")


class RecordingIdentityGateway(IdentityGateway):
    """Keeps the last instruction per user; used when no broker is configured."""

    def __init__(self):
        self.instructions: List[AccountStatusInstruction] = []

    def apply_account_status(self, instruction: AccountStatusInstruction) -> None:
        self.instructions.append(instruction)
        logger.info(
            f"Account {instruction.user_id} -> {instruction.status.value}"
            + (f" until {instruction.until.isoformat()}" if instruction.until else "")
        )

    def latest(self, user_id: str) -> Optional[AccountStatusInstruction]:
        for instruction in reversed(self.instructions):
            if instruction.user_id == user_id:
                return instruction
        return None


class RecordingNotificationSink(NotificationSink):

    def __init__(self):
        self.events: List[EngineEvent] = []

    def publish(self, event: EngineEvent) -> None:
        self.events.append(event)
        logger.info(f"Event {event.event_type.value} for user {event.user_id}")

    def of_type(self, event_type) -> List[EngineEvent]:
        return [e for e in self.events if e.event_type == event_type]


class InMemoryDeadLetters:
    """Same `publish_dlq` shape as MessageBroker."""

    def __init__(self):
        self.messages: List[Dict[str, Any]] = []

    def publish_dlq(self, original_message: Dict[str, Any], error: str) -> bool:
        self.messages.append({'original_message': original_message, 'error': error})
        logger.warning(f"Dead-lettered {original_message.get('kind')} message: {error}")
        return True


# ----------------------------------------------------------------------
# Networked implementations
# ----------------------------------------------------------------------

class KafkaIdentityGateway(IdentityGateway):

    def __init__(self, broker: MessageBroker):
        self.broker = broker

    def apply_account_status(self, instruction: AccountStatusInstruction) -> None:
        if not self.broker.publish_account_status(instruction.model_dump(mode='json')):
            raise UpstreamDegraded(f"Could not publish account status for {instruction.user_id}")


class KafkaNotificationSink(NotificationSink):

    def __init__(self, broker: MessageBroker):
        self.broker = broker

    def publish(self, event: EngineEvent) -> None:
        if not self.broker.publish_event(event.model_dump(mode='json')):
            raise UpstreamDegraded(f"Could not publish {event.event_type.value} event")


class HttpContentStore(ContentStoreGateway):
    """
    REST content service client.

    GET  {base}/content/{type}/{id}             -> {"text", "media_urls", "created_at"}
    PUT  {base}/content/{type}/{id}/visibility  <- {"visibility"}
    """

    def __init__(self, base_url: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = httpx.Timeout(timeout, connect=2.0)

    def _url(self, content_type: str, content_id: str) -> str:
        return f"{self.base_url}/content/{content_type}/{content_id}"

    async def fetch_snapshot(self, ref: ContentRef, captured_at: datetime) -> Optional[ContentSnapshot]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self._url(ref.content_type.value, ref.content_id))
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Content store fetch failed for {ref.content_type.value}/{ref.content_id}: {e}")
            raise UpstreamDegraded("Content store unavailable") from e

        return ContentSnapshot(
            text=body.get('text'),
            media_urls=tuple(body.get('media_urls') or ()),
            content_created_at=body.get('created_at'),
            captured_at=captured_at,
        )

    def set_visibility(self, instruction: VisibilityInstruction) -> None:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.put(
                    f"{self._url(instruction.content_type.value, instruction.content_id)}/visibility",
                    json={'visibility': instruction.visibility.value},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamDegraded(f"Content store rejected visibility change: {e}") from e
