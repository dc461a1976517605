import json
from django.core.management.base import BaseCommand, CommandError

from risk.services.risk_check import RiskCheckRunner, RiskCheckUnavailable


class Command(BaseCommand):
    help = "Run one margin-call sweep over all active accounts (for system cron)"

    def handle(self, *args, **options):
        try:
            summary = RiskCheckRunner().run()
        except RiskCheckUnavailable as e:
            raise CommandError(f"Margin sweep aborted: {e}") from e

        self.stdout.write(json.dumps(summary.to_dict(), indent=2))

        style = self.style.WARNING if summary.errors else self.style.SUCCESS
        self.stdout.write(style(summary.message))
