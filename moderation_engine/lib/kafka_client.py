"""
Kafka message broker client for engine outbound messages and content scans
"""
import json
import logging
import time
from typing import Dict, Any, Callable, Optional
from kafka import KafkaProducer, KafkaConsumer
from kafka.errors import KafkaError

logger = logging.getLogger(__name__)


EVENTS_TOPIC = 'moderation-events'
ACCOUNT_STATUS_TOPIC = 'account-status'
VISIBILITY_TOPIC = 'content-visibility'
CONTENT_CREATED_TOPIC = 'content-created'
DLQ_TOPIC = 'dlq-stream'


class MessageBroker:
    """Kafka producer and consumer wrapper"""

    def __init__(self, bootstrap_servers: str = 'localhost:9092'):
        self.bootstrap_servers = bootstrap_servers
        self.producer = None
        self.consumers: Dict[str, KafkaConsumer] = {}

    def _get_producer(self) -> KafkaProducer:
        """Create the producer on first publish"""
        if self.producer is None:
            try:
                self.producer = KafkaProducer(
                    bootstrap_servers=self.bootstrap_servers,
                    value_serializer=lambda v: json.dumps(v, default=str).encode('utf-8'),
                    key_serializer=lambda k: k.encode('utf-8') if k else None,
                    acks='all',
                    retries=3,
                    max_in_flight_requests_per_connection=1
                )
                logger.info(f"Kafka producer initialized: {self.bootstrap_servers}")
            except Exception as e:
                logger.error(f"Failed to initialize Kafka producer: {e}")
                raise
        return self.producer

    def publish(self, topic: str, message: Dict[str, Any], key: Optional[str] = None) -> bool:
        """Publish message to topic; False when the broker rejects it"""
        try:
            future = self._get_producer().send(
                topic,
                value=message,
                key=key
            )
            # Block for 'synchronous' sends
            record_metadata = future.get(timeout=10)
            logger.debug(f"Message sent to {topic} partition {record_metadata.partition} offset {record_metadata.offset}")
            return True
        except KafkaError as e:
            logger.error(f"Failed to send message to {topic}: {e}")
            return False

    def publish_event(self, event: Dict[str, Any]) -> bool:
        """Publish a notification event, keyed by the affected user"""
        return self.publish(EVENTS_TOPIC, event, key=event.get('user_id'))

    def publish_account_status(self, instruction: Dict[str, Any]) -> bool:
        return self.publish(ACCOUNT_STATUS_TOPIC, instruction, key=instruction.get('user_id'))

    def publish_visibility(self, instruction: Dict[str, Any]) -> bool:
        return self.publish(VISIBILITY_TOPIC, instruction, key=instruction.get('content_id'))

    def publish_dlq(self, original_message: Dict[str, Any], error: str) -> bool:
        """Publish failed message to dead letter queue"""
        dlq_message = {
            'original_message': original_message,
            'error': error,
            'timestamp': time.time()
        }
        return self.publish(DLQ_TOPIC, dlq_message)

    def create_consumer(self,
                        topic: str,
                        group_id: str,
                        handler: Callable[[Dict[str, Any]], None],
                        auto_offset_reset: str = 'latest'):
        """Create a consumer and process messages until it is closed"""
        try:
            consumer = KafkaConsumer(
                topic,
                bootstrap_servers=self.bootstrap_servers,
                group_id=group_id,
                value_deserializer=lambda m: json.loads(m.decode('utf-8')),
                auto_offset_reset=auto_offset_reset,
                enable_auto_commit=True,
                auto_commit_interval_ms=1000
            )

            self.consumers[f"{topic}_{group_id}"] = consumer
            logger.info(f"Consumer created for topic {topic} with group {group_id}")

            for message in consumer:
                try:
                    handler(message.value)
                except Exception as e:
                    logger.error(f"Error processing message from {topic}: {e}")
                    self.publish_dlq(message.value, str(e))
        except Exception as e:
            logger.error(f"Failed to create consumer: {e}")
            raise

    def consume_content_created(self, handler: Callable[[Dict[str, Any]], None]):
        """Consume newly created content for automated first scans"""
        self.create_consumer(CONTENT_CREATED_TOPIC, 'moderation-engine', handler)

    def close(self):
        """Close producer and all consumers"""
        if self.producer:
            self.producer.close()
        for consumer in self.consumers.values():
            consumer.close()
        logger.info("Kafka connections closed")
