import logging
from dataclasses import dataclass

from risk.models import MarginCallStatus, MarginCallSeverity, ResolutionType
from risk.services.margin_calls import MarginCallDetector

logger = logging.getLogger(__name__)


class InvalidTransition(Exception):
    pass


# ESCALATED -> RESOLVED closes a liquidation hand-off once the level is back
TRANSITIONS = {
    MarginCallStatus.PENDING: {MarginCallStatus.NOTIFIED},
    MarginCallStatus.NOTIFIED: {MarginCallStatus.RESOLVED, MarginCallStatus.ESCALATED},
    MarginCallStatus.ESCALATED: {MarginCallStatus.RESOLVED},
    MarginCallStatus.RESOLVED: set(),
}

RESTRICTED_STATUSES = (MarginCallStatus.NOTIFIED, MarginCallStatus.ESCALATED)


@dataclass(frozen=True)
class StateChange:
    previous_status: MarginCallStatus
    new_status: MarginCallStatus
    changed: bool
    reason: str
    escalation_required: bool


class MarginCallStateMachine:

    @staticmethod
    def update_margin_call_state(user_id: str, previous_level, current_level) -> StateChange:
        """
        Compare two successive levels for one account.

        Only the entering (PENDING -> NOTIFIED) and recovering
        (NOTIFIED -> RESOLVED) edges count as a change; escalation needs
        time in call and is decided by the sweep.
        """
        was_calling = MarginCallDetector.is_margin_call_triggered(previous_level)
        is_calling = MarginCallDetector.is_margin_call_triggered(current_level)

        if not was_calling and is_calling:
            severity = MarginCallDetector.classify_margin_call_severity(current_level)
            logger.info(f"User {user_id} entered margin call ({severity})")
            return StateChange(
                previous_status=MarginCallStatus.PENDING,
                new_status=MarginCallStatus.NOTIFIED,
                changed=True,
                reason="Margin level fell below 150% threshold",
                escalation_required=severity != MarginCallSeverity.STANDARD,
            )

        if was_calling and not is_calling:
            logger.info(f"User {user_id} recovered from margin call")
            return StateChange(
                previous_status=MarginCallStatus.NOTIFIED,
                new_status=MarginCallStatus.RESOLVED,
                changed=True,
                reason="Margin level recovered above 150% threshold",
                escalation_required=False,
            )

        if was_calling:
            previous = MarginCallDetector.classify_margin_call_severity(previous_level)
            current = MarginCallDetector.classify_margin_call_severity(current_level)
            reason = (
                f"Severity changed from {previous} to {current}"
                if previous != current
                else "No significant margin level change"
            )
            return StateChange(
                previous_status=MarginCallStatus.NOTIFIED,
                new_status=MarginCallStatus.NOTIFIED,
                changed=False,
                reason=reason,
                escalation_required=False,
            )

        return StateChange(
            previous_status=MarginCallStatus.PENDING,
            new_status=MarginCallStatus.PENDING,
            changed=False,
            reason="No significant margin level change",
            escalation_required=False,
        )

    # ------------------------------
    # ORDER GATES
    # ------------------------------

    @staticmethod
    def should_restrict_new_trading(status) -> bool:
        return status in RESTRICTED_STATUSES

    @staticmethod
    def should_enforce_close_only(status) -> bool:
        return status in RESTRICTED_STATUSES

    @staticmethod
    def trading_gates(status) -> dict:
        return {
            "restrict_new_trading": MarginCallStateMachine.should_restrict_new_trading(status),
            "close_only": MarginCallStateMachine.should_enforce_close_only(status),
        }

    # ------------------------------
    # PERSISTED TRANSITIONS
    # ------------------------------

    @staticmethod
    def transition(event, new_status, *, now, resolution_type=None, notes=None):
        """
        Apply one lifecycle edge to a MarginCallEvent in memory.
        Saving is left to the caller.
        """
        current = MarginCallStatus(event.status)
        new_status = MarginCallStatus(new_status)

        if new_status not in TRANSITIONS[current]:
            raise InvalidTransition(f"Cannot move margin call {event.pk} from {current} to {new_status}")

        event.status = new_status

        if new_status == MarginCallStatus.RESOLVED:
            event.resolved_at = now
            event.resolution_type = ResolutionType(resolution_type or ResolutionType.PRICE_RECOVERY)
        elif new_status == MarginCallStatus.ESCALATED:
            event.escalated_to_liquidation_at = now

        if notes:
            event.notes = notes

        return event
