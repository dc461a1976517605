from rest_framework import viewsets
from drf_spectacular.utils import extend_schema, OpenApiExample, OpenApiParameter
from rest_framework.decorators import action
from rest_framework.response import Response

from .models import Account, Notification, AuditLog
from .serializers import AccountSerializer, NotificationSerializer, AuditLogSerializer

from risk.models import MarginCallStatus
from risk.serializers import MarginCallEventSerializer
from risk.services.margin_calls import MarginCallDetector
from risk.services.margin_level import calculate_margin_level
from risk.services.risk_check import MarginCallEventStore
from risk.services.state_machine import MarginCallStateMachine


@extend_schema(
    tags=["Accounts"],
    description="Trading accounts and their live margin standing",
    examples=[
        OpenApiExample(
            "Account Response Example",
            value={
                "id": 1,
                "user_id": "u-1",
                "email": "alice@example.com",
                "equity": "8000.00",
                "margin_used": "10000.00",
                "margin_level": "80.00",
                "open_positions": 3,
                "account_status": "active",
                "created_at": "2025-09-07T10:00:00Z",
                "updated_at": "2025-09-07T10:00:00Z",
            },
            response_only=True,
        ),
    ],
)
class AccountViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Account.objects.all()
    serializer_class = AccountSerializer

    # --------------------------------
    # LIVE MARGIN STATUS / ORDER GATES
    # --------------------------------
    @extend_schema(
        description="Live margin-call detection, risk metrics, open margin call and trading gates",
        examples=[
            OpenApiExample(
                "Margin Status Example",
                value={
                    "user_id": "u-1",
                    "detection": {
                        "is_triggered": True,
                        "margin_level": "80.00",
                        "severity": "urgent",
                        "should_escalate": False,
                        "should_enforce_close_only": True,
                        "time_to_liquidation_minutes": 23,
                        "message": "Margin call triggered at 80.00% margin level",
                    },
                    "status": "notified",
                    "restrict_new_trading": True,
                    "close_only": True,
                },
                response_only=True,
            ),
        ],
    )
    @action(detail=True, methods=["get"], url_path="margin-status")
    def margin_status(self, request, pk=None):
        account = self.get_object()

        detection = MarginCallDetector.detect_margin_call(account.equity, account.margin_used)
        level = calculate_margin_level(account.equity, account.margin_used)
        metrics = MarginCallDetector.calculate_risk_metrics(level, account.open_positions)
        actions = MarginCallDetector.get_recommended_actions(level, account.open_positions)

        active = MarginCallEventStore().active_for(account)
        current_status = active.status if active else MarginCallStatus.PENDING

        return Response(
            {
                "user_id": account.user_id,
                "detection": detection.to_dict(),
                "risk_metrics": metrics.to_dict(),
                "recommended_actions": [
                    {"action": a.action, "urgency": a.urgency, "description": a.description}
                    for a in actions
                ],
                "active_margin_call": MarginCallEventSerializer(active).data if active else None,
                "status": str(current_status),
                **MarginCallStateMachine.trading_gates(current_status),
            }
        )


@extend_schema(
    tags=["Notifications"],
    description="In-app notifications issued by the margin sweep",
    parameters=[
        OpenApiParameter("user_id", str, description="Filter by user"),
        OpenApiParameter("unread", bool, description="Only unread notifications"),
    ],
)
class NotificationViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Notification.objects.all()
    serializer_class = NotificationSerializer

    def get_queryset(self):
        qs = super().get_queryset()

        user_id = self.request.query_params.get("user_id")
        if user_id:
            qs = qs.filter(user_id=user_id)

        unread = self.request.query_params.get("unread")
        if unread is not None and unread.lower() in ("true", "1", "yes"):
            qs = qs.filter(read=False)

        return qs

    @action(detail=True, methods=["post"], url_path="mark-read")
    def mark_read(self, request, pk=None):
        notification = self.get_object()
        if not notification.read:
            notification.read = True
            notification.save(update_fields=["read"])
        return Response(NotificationSerializer(notification).data)


@extend_schema(tags=["Audit"])
class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = AuditLog.objects.all()
    serializer_class = AuditLogSerializer
