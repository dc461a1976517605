from unittest import mock

import pytest

from core.models import Notification
from core.services.notifications import NotificationDispatcher


@pytest.mark.django_db
def test_dispatch_persists_unread_notification(django_capture_on_commit_callbacks):
    with mock.patch("core.services.notifications.publish_notification") as publish:
        with django_capture_on_commit_callbacks(execute=True):
            notification = NotificationDispatcher().dispatch(
                user_id="u-1",
                type=Notification.Type.LIQUIDATION_WARNING,
                title="Liquidation Starting",
                message="Your margin level is 25.00%.",
                data={"margin_level": "25.00", "priority": "CRITICAL"},
            )

    stored = Notification.objects.get(pk=notification.pk)
    assert stored.read is False
    assert stored.type == "LIQUIDATION_WARNING"
    assert stored.data["priority"] == "CRITICAL"
    publish.assert_called_once_with(notification)


@pytest.mark.django_db
def test_publish_waits_for_commit():
    with mock.patch("core.services.notifications.publish_notification") as publish:
        NotificationDispatcher().dispatch(
            user_id="u-1",
            type=Notification.Type.MARGIN_CALL,
            title="Margin Call",
            message="m",
        )

    publish.assert_not_called()
