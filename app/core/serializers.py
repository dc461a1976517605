from rest_framework import serializers
from .models import Account, Notification, AuditLog
from risk.services.margin_level import calculate_margin_level, round_margin_level


class AccountSerializer(serializers.ModelSerializer):
    margin_level = serializers.SerializerMethodField()

    class Meta:
        model = Account
        fields = [
            "id",
            "user_id",
            "email",
            "equity",
            "margin_used",
            "margin_level",
            "open_positions",
            "account_status",
            "created_at",
            "updated_at",
        ]

    def get_margin_level(self, obj):
        return str(round_margin_level(calculate_margin_level(obj.equity, obj.margin_used)))


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = "__all__"


class AuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditLog
        fields = "__all__"
