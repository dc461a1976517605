import hmac
import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_spectacular.utils import extend_schema, OpenApiExample, OpenApiParameter

from core.models import AuditLog
from risk.models import MarginCallEvent
from risk.serializers import MarginCallEventSerializer, ResolveMarginCallSerializer
from risk.services.risk_check import RiskCheckRunner, RiskCheckUnavailable
from risk.services.state_machine import InvalidTransition, MarginCallStateMachine

logger = logging.getLogger(__name__)


def cron_secret_valid(request) -> bool:
    expected = settings.CRON_SECRET
    provided = request.headers.get("X-Cron-Secret")

    if not expected or not provided:
        return False

    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


class RiskCheckView(APIView):
    """
    Cron trigger for the margin level sweep
    """
    authentication_classes = []
    permission_classes = []

    @extend_schema(
        tags=["Risk Sweep"],
        description="Run one margin-call sweep over all active accounts. Requires the X-Cron-Secret header.",
        request=None,
        examples=[
            OpenApiExample(
                "Sweep Summary",
                value={
                    "success": True,
                    "timestamp": "2025-09-07T10:00:00+00:00",
                    "users_checked": 3,
                    "new_margin_calls": 1,
                    "escalations": 0,
                    "resolutions": 0,
                    "errors": 0,
                    "results": [
                        {
                            "user_id": "u-1",
                            "margin_level": "80.00",
                            "has_margin_call": True,
                            "severity": "urgent",
                            "margin_call_created": True,
                            "escalated_to_liquidation": False,
                            "resolved": False,
                            "error": None,
                        }
                    ],
                    "duration_ms": 42,
                    "message": "Checked 3 accounts: 1 new margin calls, 0 escalations, 0 resolved, 0 errors",
                },
                response_only=True,
            ),
        ],
    )
    def post(self, request):
        if not cron_secret_valid(request):
            logger.error("Unauthorized access attempt to check-margin-levels")
            return Response({"error": "Unauthorized"}, status=status.HTTP_401_UNAUTHORIZED)

        try:
            summary = RiskCheckRunner().run()
        except RiskCheckUnavailable as e:
            logger.error(f"💥 Margin sweep aborted: {e}")
            return Response(
                {
                    "success": False,
                    "timestamp": timezone.now().isoformat(),
                    "error": str(e),
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response(summary.to_dict())


@extend_schema(
    tags=["Margin Calls"],
    description="Margin call history and admin overrides",
    parameters=[
        OpenApiParameter("status", str, description="Filter by status (pending, notified, resolved, escalated)"),
        OpenApiParameter("user_id", str, description="Filter by account user id"),
    ],
)
class MarginCallEventViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = MarginCallEvent.objects.select_related("account")
    serializer_class = MarginCallEventSerializer

    def get_queryset(self):
        qs = super().get_queryset()

        status_filter = self.request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)

        user_id = self.request.query_params.get("user_id")
        if user_id:
            qs = qs.for_user(user_id)

        return qs

    # --------------------------------
    # MANUAL RESOLUTION (ADMIN)
    # --------------------------------
    @extend_schema(
        description="Close an active margin call by hand (deposit received, positions closed, liquidated)",
        request=ResolveMarginCallSerializer,
        examples=[
            OpenApiExample(
                "Resolve Request",
                value={"resolution_type": "manual_deposit", "notes": "Wire received"},
                request_only=True,
            ),
        ],
    )
    @action(detail=True, methods=["post"])
    def resolve(self, request, pk=None):
        event = self.get_object()

        serializer = ResolveMarginCallSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            with transaction.atomic():
                MarginCallStateMachine.transition(
                    event,
                    "resolved",
                    now=timezone.now(),
                    resolution_type=serializer.validated_data["resolution_type"],
                    notes=serializer.validated_data.get("notes"),
                )
                event.save(update_fields=["status", "resolved_at", "resolution_type", "notes", "updated_at"])

                AuditLog.log_event(
                    event_type="MARGIN_CALL_RESOLVED",
                    account=event.account,
                    details={
                        "margin_call_event_id": event.id,
                        "resolution_type": event.resolution_type,
                        "manual": True,
                    },
                )
        except InvalidTransition as e:
            return Response({"error": str(e)}, status=status.HTTP_409_CONFLICT)

        return Response(MarginCallEventSerializer(event).data)
