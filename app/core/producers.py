import json
import logging
from kafka import KafkaProducer
from django.conf import settings
from core.models import AuditLog, Account

logger = logging.getLogger(__name__)


class KafkaProducerWrapper:
    """Singleton Kafka Producer Wrapper"""

    _producer = None

    @classmethod
    def get_producer(cls):
        if cls._producer is None:
            try:
                cls._producer = KafkaProducer(
                    bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                    value_serializer=lambda v: json.dumps(v).encode("utf-8"),
                    key_serializer=lambda k: str(k).encode("utf-8") if k else None,
                    acks="all",
                    retries=3,
                )
                logger.info("✅ Kafka Producer initialized")
            except Exception as e:
                logger.error(f"❌ Failed to initialize Kafka Producer: {e}")
                raise
        return cls._producer

    @classmethod
    def send_event(cls, topic: str, key: str, event: dict, account=None):
        """
        Send event to Kafka and log to AuditLog.

        Returns False instead of raising; callers treat delivery as
        best-effort and the persisted rows stay the source of truth.
        """
        if not settings.KAFKA_ENABLED:
            logger.debug(f"Kafka disabled, dropping event for {topic}: {event.get('type')}")
            return False

        try:
            producer = cls.get_producer()
            future = producer.send(topic, key=key, value=event)
            result = future.get(timeout=10)  # wait for ack

            logger.info(
                f"📤 Sent event to {topic} | partition={result.partition} offset={result.offset}"
            )

            AuditLog.log_event(
                event_type=event.get("type"),
                account=account,
                details=event,
            )

            return True
        except Exception as e:
            logger.error(f"❌ Kafka send_event error: {e} | topic={topic} | event={event}")
            return False

    @classmethod
    def close(cls):
        if cls._producer:
            try:
                cls._producer.flush()
                cls._producer.close()
                logger.info("🛑 Kafka Producer closed")
            except Exception as e:
                logger.warning(f"⚠️ Error closing Kafka Producer: {e}")
            finally:
                cls._producer = None


def publish_notification(notification):
    event = {
        "type": "NOTIFICATION_CREATED",
        "notification_id": notification.id,
        "user_id": notification.user_id,
        "notification_type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data,
    }
    account = Account.objects.filter(user_id=notification.user_id).first()
    return KafkaProducerWrapper.send_event(
        settings.KAFKA_NOTIFICATION_TOPIC,
        key=notification.user_id,
        event=event,
        account=account,
    )


def publish_liquidation_request(account: Account, margin_call_id: int, margin_level: str, reason: str):
    """Hand an escalated margin call over to the liquidation workflow."""
    event = {
        "type": "LIQUIDATION_REQUESTED",
        "user_id": account.user_id,
        "margin_call_event_id": margin_call_id,
        "margin_level": margin_level,
        "reason": reason,
    }
    return KafkaProducerWrapper.send_event(
        settings.KAFKA_LIQUIDATION_TOPIC,
        key=account.user_id,
        event=event,
        account=account,
    )
