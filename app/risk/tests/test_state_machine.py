from decimal import Decimal
from django.test import SimpleTestCase
from django.utils import timezone

from risk.constants import INFINITE_MARGIN_LEVEL
from risk.models import MarginCallEvent, MarginCallStatus, ResolutionType
from risk.services.state_machine import InvalidTransition, MarginCallStateMachine


class TestUpdateMarginCallState(SimpleTestCase):

    def test_no_change_when_safe(self):
        change = MarginCallStateMachine.update_margin_call_state("user-1", 200, 200)

        self.assertFalse(change.changed)
        self.assertEqual(change.new_status, MarginCallStatus.PENDING)

    def test_entering_urgent_call(self):
        change = MarginCallStateMachine.update_margin_call_state("user-1", 200, 80)

        self.assertTrue(change.changed)
        self.assertEqual(change.previous_status, MarginCallStatus.PENDING)
        self.assertEqual(change.new_status, MarginCallStatus.NOTIFIED)
        self.assertTrue(change.escalation_required)

    def test_entering_standard_call_needs_no_escalation_tracking(self):
        change = MarginCallStateMachine.update_margin_call_state("user-1", 200, 140)

        self.assertTrue(change.changed)
        self.assertFalse(change.escalation_required)

    def test_recovering(self):
        change = MarginCallStateMachine.update_margin_call_state("user-1", 80, 200)

        self.assertTrue(change.changed)
        self.assertEqual(change.previous_status, MarginCallStatus.NOTIFIED)
        self.assertEqual(change.new_status, MarginCallStatus.RESOLVED)
        self.assertFalse(change.escalation_required)

    def test_severity_shift_inside_call_is_not_a_change(self):
        change = MarginCallStateMachine.update_margin_call_state("user-1", 120, 40)

        self.assertFalse(change.changed)
        self.assertEqual(change.new_status, MarginCallStatus.NOTIFIED)
        self.assertEqual(change.reason, "Severity changed from standard to critical")

    def test_exact_threshold_flaps(self):
        # no hysteresis band: 150 is both the trigger and the resolve level
        entering = MarginCallStateMachine.update_margin_call_state("user-1", Decimal("150"), Decimal("149.99"))
        leaving = MarginCallStateMachine.update_margin_call_state("user-1", Decimal("149.99"), Decimal("150"))

        self.assertEqual(entering.new_status, MarginCallStatus.NOTIFIED)
        self.assertEqual(leaving.new_status, MarginCallStatus.RESOLVED)

    def test_infinite_previous_level_is_safe(self):
        change = MarginCallStateMachine.update_margin_call_state("user-1", INFINITE_MARGIN_LEVEL, 45)

        self.assertTrue(change.changed)
        self.assertTrue(change.escalation_required)


class TestTradingGates(SimpleTestCase):

    def test_active_statuses_restrict(self):
        for status in (MarginCallStatus.NOTIFIED, MarginCallStatus.ESCALATED):
            self.assertTrue(MarginCallStateMachine.should_restrict_new_trading(status))
            self.assertTrue(MarginCallStateMachine.should_enforce_close_only(status))

    def test_inactive_statuses_allow(self):
        for status in (MarginCallStatus.PENDING, MarginCallStatus.RESOLVED):
            self.assertFalse(MarginCallStateMachine.should_restrict_new_trading(status))
            self.assertFalse(MarginCallStateMachine.should_enforce_close_only(status))

    def test_raw_status_strings(self):
        self.assertEqual(
            MarginCallStateMachine.trading_gates("notified"),
            {"restrict_new_trading": True, "close_only": True},
        )


class TestTransition(SimpleTestCase):

    def make_event(self, status):
        return MarginCallEvent(
            status=status,
            severity="urgent",
            margin_level_at_trigger=Decimal("80.00"),
            margin_level=Decimal("80.00"),
        )

    def test_notified_to_resolved(self):
        now = timezone.now()
        event = self.make_event(MarginCallStatus.NOTIFIED)

        MarginCallStateMachine.transition(event, MarginCallStatus.RESOLVED, now=now)

        self.assertEqual(event.status, MarginCallStatus.RESOLVED)
        self.assertEqual(event.resolved_at, now)
        self.assertEqual(event.resolution_type, ResolutionType.PRICE_RECOVERY)

    def test_notified_to_escalated(self):
        now = timezone.now()
        event = self.make_event(MarginCallStatus.NOTIFIED)

        MarginCallStateMachine.transition(event, "escalated", now=now)

        self.assertEqual(event.status, MarginCallStatus.ESCALATED)
        self.assertEqual(event.escalated_to_liquidation_at, now)

    def test_escalated_closes_as_resolved(self):
        event = self.make_event(MarginCallStatus.ESCALATED)

        MarginCallStateMachine.transition(
            event,
            MarginCallStatus.RESOLVED,
            now=timezone.now(),
            resolution_type=ResolutionType.LIQUIDATION,
            notes="positions liquidated",
        )

        self.assertEqual(event.resolution_type, ResolutionType.LIQUIDATION)
        self.assertEqual(event.notes, "positions liquidated")

    def test_resolved_is_terminal(self):
        event = self.make_event(MarginCallStatus.RESOLVED)

        with self.assertRaises(InvalidTransition):
            MarginCallStateMachine.transition(event, MarginCallStatus.NOTIFIED, now=timezone.now())

    def test_escalated_cannot_escalate_again(self):
        event = self.make_event(MarginCallStatus.ESCALATED)

        with self.assertRaises(InvalidTransition):
            MarginCallStateMachine.transition(event, MarginCallStatus.ESCALATED, now=timezone.now())
