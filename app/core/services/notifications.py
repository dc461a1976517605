import logging

from django.db import transaction

from core.models import Notification
from core.producers import publish_notification

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Persists an in-app notification and fans it out over Kafka.

    The Kafka publish runs on commit so a rolled-back sweep never
    announces a margin call that was not stored.
    """

    def dispatch(self, *, user_id: str, type: str, title: str, message: str, data: dict = None):
        notification = Notification.objects.create(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            data=data or {},
            read=False,
        )

        logger.info(f"🔔 Notification {notification.type} queued for user={user_id}")

        transaction.on_commit(lambda: publish_notification(notification))

        return notification
