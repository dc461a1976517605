from django.contrib import admin
from django.utils.html import format_html

from risk.models import MarginCallEvent
from risk.services.state_machine import MarginCallStateMachine


@admin.register(MarginCallEvent)
class MarginCallEventAdmin(admin.ModelAdmin):
    list_display = [
        "account",
        "triggered_at",
        "margin_level_at_trigger",
        "margin_level",
        "severity_badge",
        "status",
        "restricts_trading",
        "resolution_type",
    ]

    list_filter = ["status", "severity", "resolution_type"]
    search_fields = ["account__user_id", "account__email"]
    readonly_fields = [
        "triggered_at",
        "margin_level_at_trigger",
        "escalated_to_liquidation_at",
        "resolved_at",
        "created_at",
        "updated_at",
    ]

    # ---------- COMPUTED COLUMNS ----------

    def severity_badge(self, obj):
        color_map = {
            "standard": "orange",
            "urgent": "#ff8c00",
            "critical": "red",
        }

        return format_html(
            '<span style="color:{}; font-weight:bold;">{}</span>',
            color_map.get(obj.severity, "black"),
            obj.get_severity_display(),
        )

    severity_badge.short_description = "Severity"

    def restricts_trading(self, obj):
        return MarginCallStateMachine.should_restrict_new_trading(obj.status)

    restricts_trading.boolean = True
    restricts_trading.short_description = "Close-only"
