from decimal import Decimal
from django.core.management.base import BaseCommand
from core.models import Account
from risk.models import MarginCallEvent
from faker import Faker
import random

# Target margin levels, one band per risk tier
LEVEL_BANDS = [
    (200, 400),   # safe
    (100, 150),   # standard call
    (50, 100),    # urgent
    (30, 50),     # critical
    (5, 30),      # immediate liquidation
]


class Command(BaseCommand):
    help = 'Seed demo accounts spread across all margin-call tiers'

    def add_arguments(self, parser):
        parser.add_argument("--count", type=int, default=10)

    def handle(self, *args, **options):
        fake = Faker()

        # Clear existing data
        MarginCallEvent.objects.all().delete()
        Account.objects.all().delete()

        for i in range(options["count"]):
            low, high = LEVEL_BANDS[i % len(LEVEL_BANDS)]
            margin_used = Decimal(str(round(random.uniform(1000, 50000), 2)))
            level = Decimal(str(round(random.uniform(low, high), 2)))

            Account.objects.create(
                user_id=fake.uuid4(),
                email=fake.unique.email(),
                margin_used=margin_used,
                equity=(margin_used * level / Decimal("100")).quantize(Decimal("0.01")),
                open_positions=random.randint(1, 8),
            )

        # One account with nothing in use
        Account.objects.create(
            user_id=fake.uuid4(),
            email=fake.unique.email(),
            equity=Decimal(str(round(random.uniform(1000, 50000), 2))),
        )

        self.stdout.write(
            self.style.SUCCESS(f'Successfully seeded {options["count"] + 1} demo accounts!')
        )
