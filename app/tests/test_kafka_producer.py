from decimal import Decimal
from unittest import mock

import pytest

from core.models import Account, AuditLog, Notification
from core.producers import (
    KafkaProducerWrapper,
    publish_liquidation_request,
    publish_notification,
)


@pytest.fixture
def kafka(settings):
    settings.KAFKA_ENABLED = True
    KafkaProducerWrapper._producer = None
    with mock.patch("core.producers.KafkaProducer") as producer_cls:
        yield producer_cls
    KafkaProducerWrapper._producer = None


@pytest.fixture
def account(db):
    return Account.objects.create(
        user_id="u-1",
        email="u-1@example.com",
        equity=Decimal("450.00"),
        margin_used=Decimal("1000.00"),
    )


@pytest.mark.django_db
def test_publish_liquidation_request(kafka, account, settings):
    result = publish_liquidation_request(account, margin_call_id=7, margin_level="45.00", reason="margin_call_escalation")

    assert result is True
    producer = kafka.return_value
    producer.send.assert_called_once()
    assert producer.send.call_args.args[0] == settings.KAFKA_LIQUIDATION_TOPIC
    assert producer.send.call_args.kwargs["key"] == "u-1"
    assert producer.send.call_args.kwargs["value"]["margin_call_event_id"] == 7

    log = AuditLog.objects.get(event_type="LIQUIDATION_REQUESTED")
    assert log.account == account


@pytest.mark.django_db
def test_publish_notification(kafka, account, settings):
    notification = Notification.objects.create(
        user_id="u-1",
        type=Notification.Type.MARGIN_CALL,
        title="Margin Call",
        message="Your margin level is 80.00%.",
        data={"margin_level": "80.00", "priority": "CRITICAL"},
    )

    assert publish_notification(notification) is True

    sent = kafka.return_value.send.call_args
    assert sent.args[0] == settings.KAFKA_NOTIFICATION_TOPIC
    assert sent.kwargs["value"]["notification_type"] == "MARGIN_CALL"
    assert sent.kwargs["value"]["data"]["priority"] == "CRITICAL"


@pytest.mark.django_db
def test_send_failure_returns_false(kafka):
    kafka.return_value.send.return_value.get.side_effect = Exception("ack timeout")

    result = KafkaProducerWrapper.send_event("margin-notifications", key="u-1", event={"type": "X"})

    assert result is False
    assert not AuditLog.objects.exists()


@pytest.mark.django_db
def test_disabled_kafka_never_connects():
    with mock.patch("core.producers.KafkaProducer") as producer_cls:
        result = KafkaProducerWrapper.send_event("margin-notifications", key="u-1", event={"type": "X"})

    assert result is False
    producer_cls.assert_not_called()


def test_producer_singleton(kafka):
    kafka.side_effect = lambda **kwargs: mock.MagicMock()

    producer1 = KafkaProducerWrapper.get_producer()
    producer2 = KafkaProducerWrapper.get_producer()
    assert producer1 is producer2

    KafkaProducerWrapper.close()
    producer1.flush.assert_called_once()
    producer1.close.assert_called_once()

    producer3 = KafkaProducerWrapper.get_producer()
    assert producer1 is not producer3
