import logging
from django.conf import settings
from django.core.management.base import BaseCommand

from core.consumers import start_consumer, handle_notification_event, handle_liquidation_event

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Consume margin-watch Kafka events and record them in the audit log"

    def add_arguments(self, parser):
        parser.add_argument(
            "--topic",
            choices=["notifications", "liquidations"],
            default="notifications",
            help="Event stream to consume (default: notifications)",
        )
        parser.add_argument(
            "--group",
            type=str,
            default="margin-watch-consumer-group",
            help="Consumer group ID",
        )

    def handle(self, *args, **options):
        if options["topic"] == "liquidations":
            topic, handler = settings.KAFKA_LIQUIDATION_TOPIC, handle_liquidation_event
        else:
            topic, handler = settings.KAFKA_NOTIFICATION_TOPIC, handle_notification_event

        logger.info(f"🔄 Starting Kafka consumer for topic={topic}, group={options['group']}")
        self.stdout.write(self.style.SUCCESS(f"Consuming {topic}..."))

        start_consumer(topic, options["group"], handler)
