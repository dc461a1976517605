from decimal import Decimal
from types import SimpleNamespace

import pytest

from core.consumers import (
    handle_liquidation_event,
    handle_notification_event,
    process_batch,
    safe_deserializer,
)
from core.models import Account, AuditLog


def message(value, offset=0):
    return SimpleNamespace(topic="margin-notifications", partition=0, offset=offset, value=value)


def test_safe_deserializer():
    assert safe_deserializer(b'{"type": "X"}') == {"type": "X"}
    assert safe_deserializer(b"not json") is None
    assert safe_deserializer(None) is None


@pytest.mark.django_db
def test_notification_event_is_audited():
    account = Account.objects.create(
        user_id="u-1",
        email="u-1@example.com",
        equity=Decimal("800.00"),
        margin_used=Decimal("1000.00"),
    )

    handled = handle_notification_event(
        {"type": "NOTIFICATION_CREATED", "user_id": "u-1", "notification_type": "MARGIN_CALL", "title": "t"}
    )

    assert handled is True
    log = AuditLog.objects.get(event_type="NOTIFICATION_DELIVERED")
    assert log.account == account


@pytest.mark.django_db
def test_liquidation_event_for_unknown_user_still_audited():
    handled = handle_liquidation_event(
        {"type": "LIQUIDATION_REQUESTED", "user_id": "ghost", "margin_call_event_id": 3, "margin_level": "25.00"}
    )

    assert handled is True
    log = AuditLog.objects.get(event_type="LIQUIDATION_HANDOFF_RECEIVED")
    assert log.account is None
    assert log.details["margin_call_event_id"] == 3


@pytest.mark.django_db
def test_events_of_other_types_are_skipped():
    assert handle_notification_event({"type": "TEST_CREATION"}) is False
    assert handle_liquidation_event({"type": "NOTIFICATION_CREATED"}) is False
    assert not AuditLog.objects.exists()


def test_process_batch_survives_a_bad_handler():
    seen = []

    def handler(event):
        if event.get("boom"):
            raise ValueError("bad event")
        seen.append(event)

    batch = {"tp": [message({"n": 1}), message(None, 1), message({"boom": True}, 2), message({"n": 2}, 3)]}

    handled = process_batch(batch, handler)

    assert handled == 2
    assert seen == [{"n": 1}, {"n": 2}]
