import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("core", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="MarginCallEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("triggered_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("margin_level_at_trigger", models.DecimalField(decimal_places=2, max_digits=20)),
                ("margin_level", models.DecimalField(decimal_places=2, max_digits=20)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "No Margin Call"),
                            ("notified", "Margin Call Active"),
                            ("resolved", "Margin Call Resolved"),
                            ("escalated", "Escalated to Liquidation"),
                        ],
                        default="notified",
                        max_length=16,
                    ),
                ),
                (
                    "severity",
                    models.CharField(
                        choices=[("standard", "Standard"), ("urgent", "Urgent"), ("critical", "Critical")],
                        max_length=16,
                    ),
                ),
                ("recommended_actions", models.JSONField(blank=True, default=list)),
                ("estimated_time_to_liquidation_minutes", models.PositiveIntegerField(blank=True, null=True)),
                ("escalated_to_liquidation_at", models.DateTimeField(blank=True, null=True)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                (
                    "resolution_type",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("price_recovery", "Price Recovery"),
                            ("manual_deposit", "Manual Deposit"),
                            ("position_close", "Position Close"),
                            ("liquidation", "Liquidation"),
                        ],
                        max_length=32,
                        null=True,
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="margin_calls",
                        to="core.account",
                    ),
                ),
            ],
            options={
                "ordering": ["-triggered_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["notified", "escalated"])),
                        fields=("account",),
                        name="one_active_margin_call_per_account",
                    )
                ],
            },
        ),
    ]
