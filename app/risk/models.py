# risk/models.py
from django.db import models
from django.utils import timezone


class MarginCallStatus(models.TextChoices):
    PENDING = "pending", "No Margin Call"
    NOTIFIED = "notified", "Margin Call Active"
    RESOLVED = "resolved", "Margin Call Resolved"
    ESCALATED = "escalated", "Escalated to Liquidation"


class MarginCallSeverity(models.TextChoices):
    STANDARD = "standard", "Standard"   # 100–150%
    URGENT = "urgent", "Urgent"         # 50–100%
    CRITICAL = "critical", "Critical"   # < 50%

    @property
    def rank(self):
        return {"standard": 1, "urgent": 2, "critical": 3}[self.value]


class ResolutionType(models.TextChoices):
    PRICE_RECOVERY = "price_recovery", "Price Recovery"
    MANUAL_DEPOSIT = "manual_deposit", "Manual Deposit"
    POSITION_CLOSE = "position_close", "Position Close"
    LIQUIDATION = "liquidation", "Liquidation"


# Rows in these states are the user's open margin call
ACTIVE_STATUSES = (MarginCallStatus.NOTIFIED, MarginCallStatus.ESCALATED)


class MarginCallEventQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status__in=ACTIVE_STATUSES)

    def for_user(self, user_id):
        return self.filter(account__user_id=user_id)


class MarginCallEvent(models.Model):
    account = models.ForeignKey(
        "core.Account",
        on_delete=models.CASCADE,
        related_name="margin_calls",
    )

    triggered_at = models.DateTimeField(default=timezone.now)

    margin_level_at_trigger = models.DecimalField(max_digits=20, decimal_places=2)

    # Latest level seen by the sweep while the call is open
    margin_level = models.DecimalField(max_digits=20, decimal_places=2)

    status = models.CharField(
        max_length=16,
        choices=MarginCallStatus.choices,
        default=MarginCallStatus.NOTIFIED,
    )

    severity = models.CharField(max_length=16, choices=MarginCallSeverity.choices)

    recommended_actions = models.JSONField(default=list, blank=True)

    estimated_time_to_liquidation_minutes = models.PositiveIntegerField(null=True, blank=True)

    escalated_to_liquidation_at = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    resolution_type = models.CharField(
        max_length=32,
        choices=ResolutionType.choices,
        null=True,
        blank=True,
    )
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = MarginCallEventQuerySet.as_manager()

    class Meta:
        ordering = ["-triggered_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["account"],
                condition=models.Q(status__in=["notified", "escalated"]),
                name="one_active_margin_call_per_account",
            ),
        ]

    @property
    def user_id(self):
        return self.account.user_id

    @property
    def is_active(self):
        return self.status in ACTIVE_STATUSES

    def __str__(self):
        return f"MarginCall(user={self.account.user_id}, {self.severity}, {self.status})"
