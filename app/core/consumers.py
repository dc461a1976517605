import json
import logging
import time
from kafka import KafkaConsumer
from kafka.errors import NoBrokersAvailable
from django.conf import settings

from core.models import AuditLog, Account

logger = logging.getLogger(__name__)


def safe_deserializer(m):
    """Safely deserialize Kafka message"""
    try:
        if not m:
            return None
        return json.loads(m.decode("utf-8"))
    except Exception as e:
        logger.error(f"⚠️ Failed to deserialize Kafka message: {e} | raw={m}")
        return None


def save_audit_log(event, event_type, user_id=None):
    """Record a consumed event; never raises into the poll loop"""
    try:
        if not isinstance(event, dict):
            logger.warning(f"⚠️ Ignoring non-dict event: {event}")
            return False

        account = None
        if user_id:
            account = Account.objects.filter(user_id=user_id).first()
            if account is None:
                logger.warning(f"Account for user {user_id} not found")

        AuditLog.objects.create(
            event_type=event_type,
            account=account,
            details=event,
        )
        logger.info(f"📝 AuditLog saved: {event_type}")
        return True

    except Exception as e:
        logger.error(f"❌ Failed to save AuditLog: {e} | event={event}")
        return False


def create_kafka_consumer(topic, group_id, max_retries=5, retry_delay=5):
    """Create and configure Kafka consumer with retry logic"""
    for attempt in range(max_retries):
        try:
            consumer = KafkaConsumer(
                topic,
                bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                auto_offset_reset="earliest",
                enable_auto_commit=False,
                group_id=group_id,
                value_deserializer=safe_deserializer,
                session_timeout_ms=30000,
                heartbeat_interval_ms=3000,
                max_poll_interval_ms=300000,
            )

            logger.info(f"✅ Successfully connected to Kafka for topic '{topic}'")
            return consumer

        except NoBrokersAvailable:
            logger.warning(f"⚠️ No Kafka brokers available (attempt {attempt + 1}/{max_retries})")
            if attempt < max_retries - 1:
                time.sleep(retry_delay)
                continue
            logger.error("💥 Failed to connect to Kafka after multiple attempts")
            raise


# Handlers
def handle_notification_event(event: dict):
    """Delivery side of the notification fan-out"""
    if event.get("type") != "NOTIFICATION_CREATED":
        logger.debug(f"Skipping event {event.get('type')} on notification topic")
        return False

    logger.info(
        f"🔔 Delivering {event.get('notification_type')} to user={event.get('user_id')}: {event.get('title')}"
    )
    return save_audit_log(event, "NOTIFICATION_DELIVERED", user_id=event.get("user_id"))


def handle_liquidation_event(event: dict):
    """Liquidation hand-off receipt; execution lives in the liquidation service"""
    if event.get("type") != "LIQUIDATION_REQUESTED":
        logger.debug(f"Skipping event {event.get('type')} on liquidation topic")
        return False

    logger.warning(
        f"⛔ Liquidation requested for user={event.get('user_id')} "
        f"margin_call={event.get('margin_call_event_id')} level={event.get('margin_level')}%"
    )
    return save_audit_log(event, "LIQUIDATION_HANDOFF_RECEIVED", user_id=event.get("user_id"))


def process_batch(raw_messages, handler_func):
    """Run handler over one poll() result; returns the number handled"""
    handled = 0
    for tp, messages in raw_messages.items():
        for message in messages:
            logger.info(f"📩 Received message from {message.topic}[{message.partition}]@offset{message.offset}")

            event = message.value
            if not event:
                continue

            try:
                handler_func(event)
                handled += 1
            except Exception as e:
                logger.error(f"❌ Error in event handler: {e}", exc_info=True)
    return handled


def start_consumer(topic: str, group_id: str, handler_func, max_batches=None):
    """Generic Kafka consumer runner"""
    consumer = None
    batches = 0

    try:
        logger.info(f"🚀 Starting {topic} consumer for group {group_id}...")

        consumer = create_kafka_consumer(topic, group_id)

        logger.info(f"📥 Consumer ready. Waiting for messages on topic '{topic}'...")

        while max_batches is None or batches < max_batches:
            raw_messages = consumer.poll(timeout_ms=1000, max_records=10)
            batches += 1

            if not raw_messages:
                continue

            process_batch(raw_messages, handler_func)
            consumer.commit()

    except KeyboardInterrupt:
        logger.info("🛑 Consumer stopped by user")
    finally:
        if consumer:
            consumer.close()
            logger.info("✅ Kafka consumer closed")
