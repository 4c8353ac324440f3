"""
Unit tests for the order and appointment lifecycle tables.

Covers:
- Every legal forward step and every rejected skip/back step
- Terminal statuses
- Stock commit/release decisions
- Default tracking descriptions
"""

import pytest

from pharmalink.core.exceptions import InvalidTransition
from pharmalink.domain.appointment_rules import (
    ACTIVE_APPOINTMENT_STATUSES,
    can_transition_appointment,
    parse_appointment_status,
    validate_appointment_transition,
)
from pharmalink.domain.entities import AppointmentStatus, OrderStatus
from pharmalink.domain.order_rules import (
    ORDER_TRANSITIONS,
    STATUS_DESCRIPTIONS,
    allowed_transitions,
    can_transition,
    describe_status,
    parse_status,
    releases_stock,
    requires_stock_commit,
    validate_transition,
)

LEGAL_STEPS = [
    (OrderStatus.PENDING, OrderStatus.CONFIRMED),
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
    (OrderStatus.CONFIRMED, OrderStatus.PREPARING),
    (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
    (OrderStatus.PREPARING, OrderStatus.OUT_FOR_DELIVERY),
    (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED),
]


@pytest.mark.unit
class TestOrderTransitions:
    @pytest.mark.parametrize("current,requested", LEGAL_STEPS)
    def test_legal_steps_are_allowed(self, current, requested):
        assert can_transition(current, requested)
        validate_transition(current, requested)

    def test_only_legal_steps_are_allowed(self):
        every_pair = [
            (a, b) for a in OrderStatus for b in OrderStatus if can_transition(a, b)
        ]
        assert sorted(every_pair) == sorted(LEGAL_STEPS)

    @pytest.mark.parametrize(
        "current,requested",
        [
            (OrderStatus.PENDING, OrderStatus.PREPARING),
            (OrderStatus.PENDING, OrderStatus.DELIVERED),
            (OrderStatus.CONFIRMED, OrderStatus.PENDING),
            (OrderStatus.PREPARING, OrderStatus.CANCELLED),
            (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED),
            (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
            (OrderStatus.CANCELLED, OrderStatus.CONFIRMED),
        ],
    )
    def test_illegal_steps_name_both_statuses(self, current, requested):
        with pytest.raises(InvalidTransition) as exc_info:
            validate_transition(current, requested)

        error = exc_info.value
        assert error.current == current.value
        assert error.requested == requested.value
        assert current.value in error.message and requested.value in error.message

    def test_same_status_is_not_a_transition(self):
        for status in OrderStatus:
            assert not can_transition(status, status)

    def test_terminal_statuses_have_no_successors(self):
        assert allowed_transitions(OrderStatus.DELIVERED) == frozenset()
        assert allowed_transitions(OrderStatus.CANCELLED) == frozenset()
        assert OrderStatus.DELIVERED.is_terminal
        assert not OrderStatus.OUT_FOR_DELIVERY.is_terminal

    def test_table_covers_every_status(self):
        assert set(ORDER_TRANSITIONS) == set(OrderStatus)

    def test_accepts_raw_strings(self):
        assert can_transition("pending", "confirmed")

    def test_parse_status_rejects_unknown_value(self):
        with pytest.raises(InvalidTransition) as exc_info:
            parse_status("shipped")
        assert exc_info.value.requested == "shipped"


@pytest.mark.unit
class TestStockEffects:
    def test_first_confirm_commits_stock(self):
        assert requires_stock_commit(OrderStatus.CONFIRMED, stock_committed=False)

    def test_already_committed_order_does_not_commit_again(self):
        assert not requires_stock_commit(OrderStatus.PREPARING, stock_committed=True)

    def test_cancel_does_not_commit(self):
        assert not requires_stock_commit(OrderStatus.CANCELLED, stock_committed=False)

    def test_cancel_after_commit_releases(self):
        assert releases_stock(OrderStatus.CANCELLED, stock_committed=True)

    def test_cancel_of_pending_order_releases_nothing(self):
        assert not releases_stock(OrderStatus.CANCELLED, stock_committed=False)


@pytest.mark.unit
class TestDescribeStatus:
    def test_default_description_per_status(self):
        for status in OrderStatus:
            assert describe_status(status) == STATUS_DESCRIPTIONS[status]

    def test_custom_description_wins_and_is_trimmed(self):
        assert describe_status(OrderStatus.CANCELLED, "  Patient changed mind ") == (
            "Patient changed mind"
        )

    def test_blank_description_falls_back(self):
        assert describe_status(OrderStatus.DELIVERED, "   ") == (
            "Order has been successfully delivered"
        )


@pytest.mark.unit
class TestAppointmentTransitions:
    def test_rescheduled_appointment_can_be_rescheduled_again(self):
        assert can_transition_appointment(
            AppointmentStatus.RESCHEDULED, AppointmentStatus.RESCHEDULED
        )

    def test_pending_cannot_complete(self):
        with pytest.raises(InvalidTransition) as exc_info:
            validate_appointment_transition(
                AppointmentStatus.PENDING, AppointmentStatus.COMPLETED
            )
        assert exc_info.value.entity == "appointment"
        assert "appointment" in exc_info.value.message

    @pytest.mark.parametrize(
        "terminal",
        [AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW],
    )
    def test_terminal_appointments_are_final(self, terminal):
        assert not any(
            can_transition_appointment(terminal, target) for target in AppointmentStatus
        )
        assert terminal not in ACTIVE_APPOINTMENT_STATUSES

    def test_parse_unknown_appointment_status(self):
        with pytest.raises(InvalidTransition):
            parse_appointment_status("postponed")
