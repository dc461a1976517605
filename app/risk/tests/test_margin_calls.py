from datetime import datetime, timedelta, timezone
from decimal import Decimal
from django.test import SimpleTestCase

from risk.constants import INFINITE_MARGIN_LEVEL
from risk.models import MarginCallSeverity, MarginCallStatus
from risk.services.margin_calls import MarginCallDetector
from risk.services.margin_level import (
    InvalidMarginInput,
    calculate_margin_level,
    round_margin_level,
)


class TestMarginLevel(SimpleTestCase):

    def test_level_is_equity_over_margin(self):
        self.assertEqual(calculate_margin_level(Decimal("10000"), Decimal("5000")), Decimal("200"))

    def test_zero_margin_is_infinite(self):
        self.assertEqual(calculate_margin_level(Decimal("500"), Decimal("0")), INFINITE_MARGIN_LEVEL)

    def test_negative_margin_fails_fast(self):
        with self.assertRaises(InvalidMarginInput):
            calculate_margin_level(Decimal("100"), Decimal("-1"))

    def test_full_precision_until_rounded(self):
        level = calculate_margin_level(Decimal("1"), Decimal("3"))

        self.assertNotEqual(level, Decimal("33.33"))
        self.assertEqual(round_margin_level(level), Decimal("33.33"))

    def test_float_inputs_keep_their_decimal_value(self):
        self.assertEqual(calculate_margin_level(49.99, 100), Decimal("49.99"))


class TestThresholdBoundaries(SimpleTestCase):

    def detect(self, equity):
        return MarginCallDetector.detect_margin_call(Decimal(equity), Decimal("100"))

    def test_just_below_50_is_critical(self):
        r = self.detect("49.99")

        self.assertTrue(r.is_triggered)
        self.assertEqual(r.severity, MarginCallSeverity.CRITICAL)
        self.assertTrue(r.should_escalate)
        self.assertTrue(r.should_enforce_close_only)

    def test_50_is_urgent(self):
        r = self.detect("50.00")

        self.assertTrue(r.is_triggered)
        self.assertEqual(r.severity, MarginCallSeverity.URGENT)
        self.assertFalse(r.should_escalate)
        self.assertTrue(r.should_enforce_close_only)

    def test_just_below_100_is_urgent(self):
        self.assertEqual(self.detect("99.99").severity, MarginCallSeverity.URGENT)

    def test_100_is_standard(self):
        r = self.detect("100.00")

        self.assertTrue(r.is_triggered)
        self.assertEqual(r.severity, MarginCallSeverity.STANDARD)
        self.assertFalse(r.should_enforce_close_only)
        self.assertFalse(r.should_escalate)

    def test_just_below_150_is_standard(self):
        self.assertEqual(self.detect("149.99").severity, MarginCallSeverity.STANDARD)

    def test_150_is_safe(self):
        r = self.detect("150.00")

        self.assertFalse(r.is_triggered)
        self.assertIsNone(r.severity)
        self.assertIsNone(r.time_to_liquidation_minutes)
        self.assertEqual(r.message, "Account margin level is safe")

    def test_reported_level_is_rounded(self):
        r = MarginCallDetector.detect_margin_call(Decimal("1"), Decimal("3"))

        self.assertEqual(r.margin_level, Decimal("33.33"))
        self.assertEqual(r.message, "Margin call triggered at 33.33% margin level")

    def test_negative_equity_is_critical_without_eta(self):
        r = self.detect("-20")

        self.assertEqual(r.severity, MarginCallSeverity.CRITICAL)
        self.assertIsNone(r.time_to_liquidation_minutes)


class TestZeroMargin(SimpleTestCase):

    def test_zero_margin_never_triggers(self):
        for equity in ("0", "100", "-50", "1000000"):
            r = MarginCallDetector.detect_margin_call(Decimal(equity), Decimal("0"))

            self.assertFalse(r.is_triggered)
            self.assertTrue(r.margin_level.is_infinite())
            self.assertIsNone(r.severity)
            self.assertEqual(r.message, "No margin used")

    def test_to_dict_renders_infinity_as_string(self):
        r = MarginCallDetector.detect_margin_call(Decimal("10"), Decimal("0"))

        self.assertEqual(r.to_dict()["margin_level"], "Infinity")


class TestSeverityMonotonicity(SimpleTestCase):

    def rank(self, equity):
        r = MarginCallDetector.detect_margin_call(Decimal(equity), Decimal("100"))
        return r.severity.rank if r.severity else 0

    def test_severity_never_rises_with_equity(self):
        equities = [Decimal(n) / 4 for n in range(-40, 800)]
        ranks = [self.rank(e) for e in equities]

        self.assertEqual(ranks, sorted(ranks, reverse=True))

    def test_classify_matches_detection(self):
        self.assertEqual(MarginCallDetector.classify_margin_call_severity(40), MarginCallSeverity.CRITICAL)
        self.assertEqual(MarginCallDetector.classify_margin_call_severity(75), MarginCallSeverity.URGENT)
        self.assertEqual(MarginCallDetector.classify_margin_call_severity(140), MarginCallSeverity.STANDARD)


class TestEscalationRule(SimpleTestCase):

    def test_critical_inside_grace_period(self):
        self.assertFalse(MarginCallDetector.should_escalate_to_liquidation(45, 29))

    def test_critical_after_grace_period(self):
        self.assertTrue(MarginCallDetector.should_escalate_to_liquidation(45, 30))

    def test_below_30_escalates_immediately(self):
        self.assertTrue(MarginCallDetector.should_escalate_to_liquidation(25, 0))

    def test_urgent_never_escalates_on_time(self):
        self.assertFalse(MarginCallDetector.should_escalate_to_liquidation(75, 600))


class TestTimeToLiquidation(SimpleTestCase):

    def test_estimate(self):
        # 60 × (80 − 50) / 80 = 22.5
        self.assertEqual(MarginCallDetector.estimate_time_to_liquidation(Decimal("80")), 23)
        self.assertEqual(MarginCallDetector.estimate_time_to_liquidation(Decimal("120")), 35)

    def test_below_target_clamps_to_zero(self):
        self.assertEqual(MarginCallDetector.estimate_time_to_liquidation(Decimal("40")), 0)

    def test_non_positive_level_has_no_estimate(self):
        self.assertIsNone(MarginCallDetector.estimate_time_to_liquidation(Decimal("0")))

    def test_detection_carries_estimate(self):
        r = MarginCallDetector.detect_margin_call(Decimal("80"), Decimal("100"))

        self.assertEqual(r.time_to_liquidation_minutes, 23)


class TestRecommendedActions(SimpleTestCase):

    def test_critical_starts_with_immediate_deposit(self):
        actions = MarginCallDetector.get_recommended_actions(40, 3)

        self.assertEqual(actions[0].action, "Deposit funds immediately")
        self.assertEqual(actions[0].urgency, "high")
        self.assertEqual(
            [a.action for a in actions],
            ["Deposit funds immediately", "Close all non-essential positions", "Reduce leverage"],
        )

    def test_urgent_tier(self):
        actions = MarginCallDetector.get_recommended_actions(80, 2)

        self.assertEqual(
            [(a.action, a.urgency) for a in actions],
            [
                ("Deposit funds", "high"),
                ("Close largest losing positions", "high"),
                ("Set tight stop losses", "medium"),
            ],
        )

    def test_standard_tier(self):
        actions = MarginCallDetector.get_recommended_actions(120, 2)

        self.assertEqual([a.urgency for a in actions], ["medium", "medium", "low"])
        self.assertEqual(actions[0].action, "Monitor margin level closely")

    def test_no_positions_drops_closing_advice(self):
        actions = MarginCallDetector.get_recommended_actions(40, 0)

        self.assertEqual([a.action for a in actions], ["Deposit funds immediately", "Reduce leverage"])

    def test_safe_level_has_no_actions(self):
        self.assertEqual(MarginCallDetector.get_recommended_actions(200, 5), [])


class TestRiskMetrics(SimpleTestCase):

    def test_in_call_metrics(self):
        m = MarginCallDetector.calculate_risk_metrics(Decimal("120"), 5, Decimal("2.5"), Decimal("0.35"))

        self.assertEqual(m.status, MarginCallStatus.NOTIFIED)
        self.assertEqual(m.positions_at_risk, 3)
        self.assertEqual(m.average_leverage_used, Decimal("2.50"))
        self.assertEqual(m.concentration_risk, Decimal("0.35"))
        self.assertEqual(m.estimated_time_to_liquidation, 35)

    def test_safe_metrics(self):
        m = MarginCallDetector.calculate_risk_metrics(Decimal("300"), 4, largest_position=Decimal("0.1"))

        self.assertEqual(m.status, MarginCallStatus.PENDING)
        self.assertEqual(m.positions_at_risk, 0)
        self.assertEqual(m.concentration_risk, Decimal("0"))
        self.assertIsNone(m.estimated_time_to_liquidation)

    def test_critical_level_maps_to_escalated(self):
        m = MarginCallDetector.calculate_risk_metrics(Decimal("40"), 1)

        self.assertEqual(m.status, MarginCallStatus.ESCALATED)
        self.assertEqual(m.to_dict()["status"], "escalated")


class TestMinutesInCall(SimpleTestCase):

    def test_whole_minutes(self):
        start = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

        self.assertEqual(MarginCallDetector.minutes_in_call(start, start + timedelta(minutes=29, seconds=59)), 29)
        self.assertEqual(MarginCallDetector.minutes_in_call(start, start - timedelta(minutes=1)), 0)
