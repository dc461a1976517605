from django.contrib import admin
from django.utils.html import format_html

from risk.services.margin_level import calculate_margin_level, round_margin_level
from .models import Account, Notification, AuditLog


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ['user_id', 'email', 'equity', 'margin_used', 'margin_level', 'open_positions', 'account_status']
    list_filter = ['account_status']
    search_fields = ['user_id', 'email']

    def margin_level(self, obj):
        level = round_margin_level(calculate_margin_level(obj.equity, obj.margin_used))

        if level >= 150:
            color = "green"
        elif level >= 100:
            color = "orange"
        elif level >= 50:
            color = "#ff8c00"
        else:
            color = "red"

        return format_html(
            '<strong style="color:{};">{}%</strong>',
            color,
            level,
        )

    margin_level.short_description = "Margin Level"


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['user_id', 'type', 'title', 'read', 'created_at']
    list_filter = ['type', 'read']
    search_fields = ['user_id', 'title']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['event_type', 'account', 'created_at']
    list_filter = ['event_type', 'created_at']
    readonly_fields = ['created_at']
