"""
Margin call detection.

Escalation path by margin level (equity / margin used × 100):

    >= 150%     safe, no call
    100 – 150%  STANDARD call
    50 – 100%   URGENT call, close-only trading
    < 50%       CRITICAL call, close-only, liquidation after 30 minutes
    < 30%       liquidation hand-off regardless of time in call

Everything here is pure: no ORM access, no clock reads.
"""
import math
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal, ROUND_CEILING
from typing import List, Optional

from risk.constants import (
    CONCENTRATION_THRESHOLD,
    ESCALATION_GRACE_MINUTES,
    LIQUIDATION_TARGET_LEVEL,
    MARGIN_LEVELS,
)
from risk.models import MarginCallSeverity, MarginCallStatus
from risk.services.margin_level import (
    calculate_margin_level,
    round_margin_level,
    to_decimal,
)


@dataclass(frozen=True)
class DetectionResult:
    is_triggered: bool
    margin_level: Decimal
    severity: Optional[MarginCallSeverity]
    should_escalate: bool
    should_enforce_close_only: bool
    time_to_liquidation_minutes: Optional[int]
    message: str

    def to_dict(self):
        return {
            "is_triggered": self.is_triggered,
            "margin_level": str(self.margin_level),
            "severity": self.severity.value if self.severity else None,
            "should_escalate": self.should_escalate,
            "should_enforce_close_only": self.should_enforce_close_only,
            "time_to_liquidation_minutes": self.time_to_liquidation_minutes,
            "message": self.message,
        }


@dataclass(frozen=True)
class MarginCallAction:
    action: str
    urgency: str  # high | medium | low
    description: str


@dataclass(frozen=True)
class RiskMetrics:
    margin_level: Decimal
    status: MarginCallStatus
    open_positions: int
    positions_at_risk: int
    average_leverage_used: Decimal
    largest_position_size: Decimal
    concentration_risk: Decimal
    estimated_time_to_liquidation: Optional[int]

    def to_dict(self):
        data = asdict(self)
        data["status"] = self.status.value
        for key in ("margin_level", "average_leverage_used", "largest_position_size", "concentration_risk"):
            data[key] = str(data[key])
        return data


class MarginCallDetector:

    # ------------------------------
    # THRESHOLDS
    # ------------------------------

    @staticmethod
    def is_margin_call_triggered(margin_level) -> bool:
        return to_decimal(margin_level) < MARGIN_LEVELS["MARGIN_CALL"]

    @staticmethod
    def classify_margin_call_severity(margin_level) -> MarginCallSeverity:
        """
        Severity of a level already known to be in call.

        Levels >= 150% never reach here on the detection path, so they
        fall through to STANDARD.
        """
        level = to_decimal(margin_level)

        if level < MARGIN_LEVELS["CRITICAL"]:
            return MarginCallSeverity.CRITICAL
        if level < MARGIN_LEVELS["URGENT"]:
            return MarginCallSeverity.URGENT
        return MarginCallSeverity.STANDARD

    @staticmethod
    def should_escalate_to_liquidation(margin_level, time_in_call_minutes) -> bool:
        level = to_decimal(margin_level)

        # CRITICAL for the whole grace period
        if level < MARGIN_LEVELS["CRITICAL"] and time_in_call_minutes >= ESCALATION_GRACE_MINUTES:
            return True

        return level < MARGIN_LEVELS["IMMEDIATE_LIQUIDATION"]

    @staticmethod
    def estimate_time_to_liquidation(margin_level) -> Optional[int]:
        """
        Advisory only: assumes the level keeps decaying at a rate of
        level/60 per minute until it reaches 50%. Not a liquidation SLA.
        """
        level = to_decimal(margin_level)

        if level <= 0 or level.is_infinite():
            return None

        minutes = (level - LIQUIDATION_TARGET_LEVEL) / (level / Decimal("60"))
        return max(0, int(minutes.to_integral_value(rounding=ROUND_CEILING)))

    # ------------------------------
    # DETECTION
    # ------------------------------

    @staticmethod
    def detect_margin_call(equity, margin_used) -> DetectionResult:
        level = calculate_margin_level(equity, margin_used)

        if level.is_infinite():
            return DetectionResult(
                is_triggered=False,
                margin_level=level,
                severity=None,
                should_escalate=False,
                should_enforce_close_only=False,
                time_to_liquidation_minutes=None,
                message="No margin used",
            )

        # Compare unrounded, report rounded
        rounded = round_margin_level(level)

        if not MarginCallDetector.is_margin_call_triggered(level):
            return DetectionResult(
                is_triggered=False,
                margin_level=rounded,
                severity=None,
                should_escalate=False,
                should_enforce_close_only=False,
                time_to_liquidation_minutes=None,
                message="Account margin level is safe",
            )

        severity = MarginCallDetector.classify_margin_call_severity(level)

        return DetectionResult(
            is_triggered=True,
            margin_level=rounded,
            severity=severity,
            should_escalate=severity == MarginCallSeverity.CRITICAL,
            should_enforce_close_only=severity != MarginCallSeverity.STANDARD,
            time_to_liquidation_minutes=MarginCallDetector.estimate_time_to_liquidation(level),
            message=f"Margin call triggered at {rounded}% margin level",
        )

    # ------------------------------
    # ADVICE
    # ------------------------------

    @staticmethod
    def get_recommended_actions(margin_level, position_count: int) -> List[MarginCallAction]:
        """
        Tiered advice, most urgent first. Position-closing advice is left
        out when there is nothing open to close.
        """
        level = to_decimal(margin_level)
        has_positions = position_count > 0

        if level < MARGIN_LEVELS["CRITICAL"]:
            actions = [
                MarginCallAction(
                    "Deposit funds immediately",
                    "high",
                    "Add funds to account to bring margin level above 50% and prevent forced liquidation",
                ),
                MarginCallAction(
                    "Close all non-essential positions",
                    "high",
                    "Close positions with lowest margin contribution to free up margin quickly",
                ) if has_positions else None,
                MarginCallAction(
                    "Reduce leverage",
                    "high",
                    "If using high leverage, reduce it to lower margin requirements",
                ),
            ]
        elif level < MARGIN_LEVELS["URGENT"]:
            actions = [
                MarginCallAction(
                    "Deposit funds",
                    "high",
                    "Add funds to account to increase margin level above 100%",
                ),
                MarginCallAction(
                    "Close largest losing positions",
                    "high",
                    "Close positions with largest unrealized losses to free margin",
                ) if has_positions else None,
                MarginCallAction(
                    "Set tight stop losses",
                    "medium",
                    "Protect remaining positions with protective stops",
                ) if has_positions else None,
            ]
        elif level < MARGIN_LEVELS["MARGIN_CALL"]:
            actions = [
                MarginCallAction(
                    "Monitor margin level closely",
                    "medium",
                    "Watch margin level throughout trading session",
                ),
                MarginCallAction(
                    "Be ready to deposit funds",
                    "medium",
                    "Have deposit method ready in case margin level drops further",
                ),
                MarginCallAction(
                    "Avoid new high-leverage trades",
                    "low",
                    "Reduce position size for new trades to preserve margin",
                ),
            ]
        else:
            actions = []

        return [a for a in actions if a is not None]

    @staticmethod
    def calculate_risk_metrics(
        margin_level,
        open_positions: int,
        average_leverage=1,
        largest_position=0,
    ) -> RiskMetrics:
        level = to_decimal(margin_level)
        largest = to_decimal(largest_position)

        if level < MARGIN_LEVELS["CRITICAL"]:
            status = MarginCallStatus.ESCALATED
        elif level < MARGIN_LEVELS["MARGIN_CALL"]:
            status = MarginCallStatus.NOTIFIED
        else:
            status = MarginCallStatus.PENDING

        in_call = level < MARGIN_LEVELS["MARGIN_CALL"]

        return RiskMetrics(
            margin_level=round_margin_level(level),
            status=status,
            open_positions=open_positions,
            positions_at_risk=math.ceil(open_positions / 2) if open_positions > 0 and in_call else 0,
            average_leverage_used=round_margin_level(to_decimal(average_leverage)),
            largest_position_size=largest,
            concentration_risk=largest if largest > CONCENTRATION_THRESHOLD else Decimal("0"),
            estimated_time_to_liquidation=(
                MarginCallDetector.estimate_time_to_liquidation(level) if in_call else None
            ),
        )

    @staticmethod
    def minutes_in_call(triggered_at: datetime, now: datetime) -> int:
        return max(0, int((now - triggered_at).total_seconds() // 60))
