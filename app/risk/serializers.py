from django.utils import timezone
from rest_framework import serializers

from risk.models import MarginCallEvent, ResolutionType
from risk.services.margin_calls import MarginCallDetector
from risk.services.state_machine import MarginCallStateMachine


class MarginCallEventSerializer(serializers.ModelSerializer):
    user_id = serializers.CharField(source="account.user_id", read_only=True)
    status_label = serializers.CharField(source="get_status_display", read_only=True)
    time_in_call_minutes = serializers.SerializerMethodField()
    restricts_trading = serializers.SerializerMethodField()

    class Meta:
        model = MarginCallEvent
        fields = [
            "id",
            "account",
            "user_id",
            "triggered_at",
            "margin_level_at_trigger",
            "margin_level",
            "status",
            "status_label",
            "severity",
            "recommended_actions",
            "estimated_time_to_liquidation_minutes",
            "time_in_call_minutes",
            "restricts_trading",
            "escalated_to_liquidation_at",
            "resolved_at",
            "resolution_type",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_time_in_call_minutes(self, obj):
        if not obj.is_active:
            return None
        return MarginCallDetector.minutes_in_call(obj.triggered_at, timezone.now())

    def get_restricts_trading(self, obj):
        return MarginCallStateMachine.should_restrict_new_trading(obj.status)


class ResolveMarginCallSerializer(serializers.Serializer):
    # price_recovery is reserved for the sweep
    resolution_type = serializers.ChoiceField(
        choices=[
            ResolutionType.MANUAL_DEPOSIT,
            ResolutionType.POSITION_CLOSE,
            ResolutionType.LIQUIDATION,
        ]
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")
