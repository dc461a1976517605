from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone
from decimal import Decimal


class Account(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        SUSPENDED = "suspended", "Suspended"
        CLOSED = "closed", "Closed"

    user_id = models.CharField(max_length=64, unique=True)
    email = models.EmailField(unique=True)
    equity = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))
    margin_used = models.DecimalField(max_digits=20, decimal_places=2, default=Decimal("0.00"))
    open_positions = models.PositiveIntegerField(default=0)
    account_status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.ACTIVE,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(margin_used__gte=0),
                name="account_margin_used_non_negative",
            ),
        ]

    def __str__(self):
        return f"Account(user={self.user_id}, equity={self.equity}, margin_used={self.margin_used})"


class Notification(models.Model):
    class Type(models.TextChoices):
        MARGIN_CALL = "MARGIN_CALL", "Margin Call"
        LIQUIDATION_WARNING = "LIQUIDATION_WARNING", "Liquidation Warning"
        MARGIN_CALL_RESOLVED = "MARGIN_CALL_RESOLVED", "Margin Call Resolved"

    user_id = models.CharField(max_length=64, db_index=True)
    type = models.CharField(max_length=32, choices=Type.choices)
    title = models.CharField(max_length=200)
    message = models.TextField()
    data = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.type} -> {self.user_id}"


class AuditLog(models.Model):
    event_type = models.CharField(max_length=50)
    account = models.ForeignKey(Account, on_delete=models.SET_NULL, null=True, blank=True)
    details = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]

    @classmethod
    def log_event(cls, event_type, account=None, details=None):
        """Helper for logging events"""
        return cls.objects.create(
            event_type=event_type,
            account=account,
            details=details or {},
            created_at=timezone.now(),
        )
