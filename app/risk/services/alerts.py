from core.models import Notification
from risk.constants import ESCALATION_GRACE_MINUTES, MARGIN_LEVELS, NOTIFICATION_PRIORITY
from risk.models import MarginCallSeverity

TITLES = {
    MarginCallSeverity.STANDARD: "⚠️ Margin Call - Account at Risk",
    MarginCallSeverity.URGENT: "🔴 Urgent Margin Call - Close-Only Mode",
    MarginCallSeverity.CRITICAL: "🚨 CRITICAL Margin Call - Liquidation Risk",
}


def margin_call_notice(detection, actions, level):
    """level is the unrounded margin level the severity was taken from"""
    severity = detection.severity
    eta = detection.time_to_liquidation_minutes

    message = f"Your account margin level is {detection.margin_level}%."
    if eta:
        message += f" Estimated time to liquidation: {eta} minutes."
    if level < MARGIN_LEVELS["IMMEDIATE_LIQUIDATION"]:
        message += " Your account is below the liquidation threshold and will be liquidated on the next risk check."
    elif severity == MarginCallSeverity.CRITICAL:
        message += f" You have {ESCALATION_GRACE_MINUTES} minutes to add funds before liquidation."
    else:
        message += " Add funds or close positions to prevent forced liquidation."

    return {
        "type": Notification.Type.MARGIN_CALL,
        "title": TITLES[severity],
        "message": message,
        "data": {
            "margin_level": str(detection.margin_level),
            "severity": severity.value,
            "priority": NOTIFICATION_PRIORITY[severity.value],
            "time_to_liquidation_minutes": eta,
            "recommended_actions": [a.action for a in actions],
        },
    }


def liquidation_warning(margin_level, severity):
    return {
        "type": Notification.Type.LIQUIDATION_WARNING,
        "title": "⛔ Liquidation Starting",
        "message": (
            f"Your margin level is {margin_level}%. Your margin call has been escalated "
            "and positions will be liquidated to prevent a negative balance."
        ),
        "data": {
            "margin_level": str(margin_level),
            "severity": severity.value,
            "priority": "CRITICAL",
        },
    }


def resolution_notice(margin_level):
    return {
        "type": Notification.Type.MARGIN_CALL_RESOLVED,
        "title": "Margin Call Resolved",
        "message": f"Your margin level has recovered to {margin_level}%. Trading restrictions are lifted.",
        "data": {
            "margin_level": str(margin_level),
            "priority": "LOW",
        },
    }
