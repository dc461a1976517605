import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from core.models import Account, AuditLog
from core.producers import publish_liquidation_request
from core.services.notifications import NotificationDispatcher
from risk.models import MarginCallEvent, MarginCallSeverity, MarginCallStatus, ResolutionType
from risk.services import alerts
from risk.services.margin_calls import MarginCallDetector
from risk.services.margin_level import calculate_margin_level
from risk.services.state_machine import MarginCallStateMachine

logger = logging.getLogger(__name__)


class RiskCheckUnavailable(Exception):
    """The account store could not be read; the sweep cannot run."""


@dataclass
class AccountCheckResult:
    user_id: str
    margin_level: Optional[Decimal] = None
    has_margin_call: bool = False
    severity: Optional[str] = None
    margin_call_created: bool = False
    escalated_to_liquidation: bool = False
    resolved: bool = False
    error: Optional[str] = None

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "margin_level": str(self.margin_level) if self.margin_level is not None else None,
            "has_margin_call": self.has_margin_call,
            "severity": self.severity,
            "margin_call_created": self.margin_call_created,
            "escalated_to_liquidation": self.escalated_to_liquidation,
            "resolved": self.resolved,
            "error": self.error,
        }


@dataclass
class RiskCheckSummary:
    timestamp: str
    results: List[AccountCheckResult] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def users_checked(self):
        return len(self.results)

    @property
    def new_margin_calls(self):
        return sum(1 for r in self.results if r.margin_call_created)

    @property
    def escalations(self):
        return sum(1 for r in self.results if r.escalated_to_liquidation)

    @property
    def resolutions(self):
        return sum(1 for r in self.results if r.resolved)

    @property
    def errors(self):
        return sum(1 for r in self.results if r.error)

    @property
    def message(self):
        return (
            f"Checked {self.users_checked} accounts: {self.new_margin_calls} new margin calls, "
            f"{self.escalations} escalations, {self.resolutions} resolved, {self.errors} errors"
        )

    def to_dict(self):
        return {
            "success": True,
            "timestamp": self.timestamp,
            "users_checked": self.users_checked,
            "new_margin_calls": self.new_margin_calls,
            "escalations": self.escalations,
            "resolutions": self.resolutions,
            "errors": self.errors,
            "results": [r.to_dict() for r in self.results],
            "duration_ms": self.duration_ms,
            "message": self.message,
        }


# ------------------------------
# STORES
# ------------------------------

class AccountStore:

    def active_margin_accounts(self):
        try:
            return list(
                Account.objects
                .filter(account_status=Account.Status.ACTIVE, margin_used__gt=0)
                .order_by("id")
            )
        except DatabaseError as e:
            raise RiskCheckUnavailable(f"Failed to fetch accounts: {e}") from e


class MarginCallEventStore:

    def active_for(self, account):
        return (
            MarginCallEvent.objects
            .active()
            .filter(account=account)
            .order_by("-triggered_at")
            .first()
        )

    def create(self, account, *, margin_level, severity, recommended_actions, eta_minutes, now):
        return MarginCallEvent.objects.create(
            account=account,
            triggered_at=now,
            margin_level_at_trigger=margin_level,
            margin_level=margin_level,
            status=MarginCallStatus.NOTIFIED,
            severity=severity,
            recommended_actions=recommended_actions,
            estimated_time_to_liquidation_minutes=eta_minutes,
        )

    def resolve(self, event, *, resolution_type, now, notes=None):
        MarginCallStateMachine.transition(
            event,
            MarginCallStatus.RESOLVED,
            now=now,
            resolution_type=resolution_type,
            notes=notes,
        )
        event.save(update_fields=["status", "resolved_at", "resolution_type", "notes", "updated_at"])
        return event

    def escalate(self, event, *, margin_level, severity, now):
        MarginCallStateMachine.transition(event, MarginCallStatus.ESCALATED, now=now)
        event.margin_level = margin_level
        event.severity = severity
        event.save(update_fields=[
            "status", "escalated_to_liquidation_at", "margin_level", "severity", "updated_at",
        ])
        return event

    def refresh(self, event, *, margin_level, severity):
        if event.margin_level == margin_level and event.severity == severity:
            return event
        event.margin_level = margin_level
        event.severity = severity
        event.save(update_fields=["margin_level", "severity", "updated_at"])
        return event


# ------------------------------
# SWEEP
# ------------------------------

class RiskCheckRunner:
    """
    One periodic sweep over every active account with margin in use.

    Accounts are evaluated one at a time, each inside its own
    transaction. A failing account is rolled back, recorded on its
    result and skipped; only an unreadable account store aborts the run.
    """

    def __init__(self, account_store=None, event_store=None, notifier=None, clock=timezone.now):
        self.accounts = account_store or AccountStore()
        self.events = event_store or MarginCallEventStore()
        self.notifier = notifier or NotificationDispatcher()
        self.clock = clock

    def run(self) -> RiskCheckSummary:
        started = time.monotonic()
        summary = RiskCheckSummary(timestamp=self.clock().isoformat())

        logger.info("🔍 Starting margin level sweep...")

        accounts = self.accounts.active_margin_accounts()

        logger.info(f"Checking {len(accounts)} accounts with margin in use")

        for account in accounts:
            result = AccountCheckResult(user_id=account.user_id)
            try:
                with transaction.atomic():
                    self.check_account(account, result)
            except Exception as e:
                logger.error(f"❌ Risk check failed for user={account.user_id}: {e}", exc_info=True)
                result.margin_call_created = False
                result.escalated_to_liquidation = False
                result.resolved = False
                result.error = str(e) or e.__class__.__name__
            summary.results.append(result)

        summary.duration_ms = int((time.monotonic() - started) * 1000)

        logger.info(f"✅ Risk check complete: {summary.message}")

        return summary

    def check_account(self, account, result: AccountCheckResult):
        now = self.clock()

        level = calculate_margin_level(account.equity, account.margin_used)
        detection = MarginCallDetector.detect_margin_call(account.equity, account.margin_used)

        result.margin_level = detection.margin_level
        result.has_margin_call = detection.is_triggered
        result.severity = detection.severity.value if detection.severity else None

        active = self.events.active_for(account)

        # ---------------- RECOVERED ----------------
        if not detection.is_triggered:
            if active:
                self._resolve(account, active, detection, now)
                result.resolved = True
            return

        # ---------------- NEW CALL ----------------
        if active is None:
            result.margin_call_created = self._open(account, detection, level, now)
            return

        # ---------------- ESCALATION ----------------
        minutes = MarginCallDetector.minutes_in_call(active.triggered_at, now)

        if (
            active.status == MarginCallStatus.NOTIFIED
            and MarginCallDetector.should_escalate_to_liquidation(level, minutes)
        ):
            self._escalate(account, active, detection, minutes, now)
            result.escalated_to_liquidation = True
            return

        previous = MarginCallSeverity(active.severity)
        self.events.refresh(active, margin_level=detection.margin_level, severity=detection.severity)

        if detection.severity.rank > previous.rank:
            AuditLog.log_event(
                event_type="MARGIN_CALL_SEVERITY_INCREASED",
                account=account,
                details={
                    "margin_call_event_id": active.id,
                    "margin_level": str(detection.margin_level),
                    "from": previous.value,
                    "to": detection.severity.value,
                },
            )
            logger.warning(
                f"📉 Margin call worsened for user={account.user_id}: {previous} -> {detection.severity}"
            )

    # ------------------------------
    # EDGES
    # ------------------------------

    def _open(self, account, detection, level, now) -> bool:
        # Tier from the unrounded level, same as severity
        actions = MarginCallDetector.get_recommended_actions(level, account.open_positions)

        try:
            with transaction.atomic():
                event = self.events.create(
                    account,
                    margin_level=detection.margin_level,
                    severity=detection.severity,
                    recommended_actions=[a.action for a in actions],
                    eta_minutes=detection.time_to_liquidation_minutes,
                    now=now,
                )
        except IntegrityError:
            # Another sweep opened the call between our read and insert
            logger.warning(f"⚠️ Active margin call already exists for user={account.user_id}, skipping insert")
            AuditLog.log_event(
                event_type="MARGIN_CALL_DUPLICATE_SUPPRESSED",
                account=account,
                details={"margin_level": str(detection.margin_level)},
            )
            return False

        self.notifier.dispatch(user_id=account.user_id, **alerts.margin_call_notice(detection, actions, level))

        AuditLog.log_event(
            event_type="MARGIN_CALL_CREATED",
            account=account,
            details={
                "margin_call_event_id": event.id,
                "margin_level": str(detection.margin_level),
                "severity": detection.severity.value,
            },
        )

        logger.warning(
            f"📢 Margin call opened for user={account.user_id} "
            f"level={detection.margin_level}% severity={detection.severity}"
        )
        return True

    def _escalate(self, account, active, detection, minutes, now):
        self.events.escalate(
            active,
            margin_level=detection.margin_level,
            severity=detection.severity,
            now=now,
        )

        self.notifier.dispatch(
            user_id=account.user_id,
            **alerts.liquidation_warning(detection.margin_level, detection.severity),
        )

        AuditLog.log_event(
            event_type="MARGIN_CALL_ESCALATED",
            account=account,
            details={
                "margin_call_event_id": active.id,
                "margin_level": str(detection.margin_level),
                "minutes_in_call": minutes,
            },
        )

        event_id = active.id
        level = str(detection.margin_level)
        transaction.on_commit(
            lambda: publish_liquidation_request(account, event_id, level, reason="margin_call_escalation")
        )

        logger.warning(
            f"🚨 Margin call escalated to liquidation for user={account.user_id} "
            f"level={detection.margin_level}% after {minutes} min"
        )

    def _resolve(self, account, active, detection, now):
        resolution_type = (
            ResolutionType.LIQUIDATION
            if active.status == MarginCallStatus.ESCALATED
            else ResolutionType.PRICE_RECOVERY
        )

        self.events.resolve(active, resolution_type=resolution_type, now=now)

        self.notifier.dispatch(
            user_id=account.user_id,
            **alerts.resolution_notice(detection.margin_level),
        )

        AuditLog.log_event(
            event_type="MARGIN_CALL_RESOLVED",
            account=account,
            details={
                "margin_call_event_id": active.id,
                "margin_level": str(detection.margin_level),
                "resolution_type": resolution_type.value,
            },
        )

        logger.info(f"✅ Margin call resolved for user={account.user_id} level={detection.margin_level}%")
