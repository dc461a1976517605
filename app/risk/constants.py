from decimal import Decimal

# Margin level (equity / margin used × 100) thresholds, most severe first
MARGIN_LEVELS = {
    "IMMEDIATE_LIQUIDATION": Decimal("30.00"),  # < 30% escalates at once
    "CRITICAL": Decimal("50.00"),               # < 50%
    "URGENT": Decimal("100.00"),                # 50–100%
    "MARGIN_CALL": Decimal("150.00"),           # 100–150%, also the resolve level
}

# No margin used: treated as infinitely safe
INFINITE_MARGIN_LEVEL = Decimal("Infinity")

# Minutes a CRITICAL call may stay open before liquidation hand-off
ESCALATION_GRACE_MINUTES = 30

# Level the time-to-liquidation estimate decays towards
LIQUIDATION_TARGET_LEVEL = Decimal("50.00")

# Largest position share of equity reported as concentration risk
CONCENTRATION_THRESHOLD = Decimal("0.30")

NOTIFICATION_PRIORITY = {
    "standard": "HIGH",
    "urgent": "CRITICAL",
    "critical": "CRITICAL",
}
