"""
Unit tests for the ticket domain entities.

Coverage:
- TicketEntity.create (intake validation)
- enter_status (payload application, stage timestamps)
- force_status (administrative override)
- Enum lookups, Location parsing, Escalation defaults
"""

from datetime import date, datetime, timezone

import pytest

from src.core.shared.exceptions import ValidationError
from src.core.tickets.entities import (
    ActorRole,
    ConfirmationType,
    DeviceType,
    Escalation,
    EscalationLevel,
    EscalationType,
    Location,
    NotFixedReason,
    TicketEntity,
    TicketStatus,
    TimeSlot,
)


AT = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)


def make_ticket(**kwargs) -> TicketEntity:
    defaults = dict(
        customer_name="Maria Souza",
        customer_phone="+905551112233",
        customer_address="Bagdat Cd. 10",
        created_at=AT,
    )
    defaults.update(kwargs)
    return TicketEntity.create(**defaults)


class TestTicketCreation:

    def test_create_starts_in_new(self):
        ticket = make_ticket(device_type=DeviceType.WASHER)

        assert ticket.status == TicketStatus.NEW
        assert ticket.version == 0
        assert ticket.device_type == DeviceType.WASHER
        assert ticket.created_at == AT
        assert ticket.updated_at == AT

    def test_create_generates_ticket_number(self):
        ticket = make_ticket()

        assert ticket.ticket_number.startswith("FS-20260115-")
        assert len(ticket.ticket_number) == len("FS-20260115-") + 6

    def test_create_keeps_given_ticket_number(self):
        assert make_ticket(ticket_number="FS-1").ticket_number == "FS-1"

    def test_create_strips_customer_data(self):
        ticket = make_ticket(customer_name="  Ali Veli  ", customer_phone=" 555 ")

        assert ticket.customer_name == "Ali Veli"
        assert ticket.customer_phone == "555"

    @pytest.mark.parametrize("name", ["", " ", "A", None])
    def test_create_rejects_short_customer_name(self, name):
        with pytest.raises(ValidationError) as exc_info:
            make_ticket(customer_name=name)

        assert exc_info.value.field == "customer_name"

    def test_create_requires_phone(self):
        with pytest.raises(ValidationError) as exc_info:
            make_ticket(customer_phone="  ")

        assert exc_info.value.field == "customer_phone"

    def test_equality_by_id(self):
        ticket = make_ticket()
        other = make_ticket()

        assert ticket != other
        assert ticket == TicketEntity(id=ticket.id)
        assert len({ticket, TicketEntity(id=ticket.id)}) == 1


class TestEnterStatus:

    def test_assigned_sets_technician(self):
        ticket = make_ticket()

        ticket.enter_status(TicketStatus.ASSIGNED, {"technician_id": " tech-7 "}, AT)

        assert ticket.status == TicketStatus.ASSIGNED
        assert ticket.technician_id == "tech-7"
        assert ticket.updated_at == AT

    def test_scheduled_sets_date_and_slot(self):
        ticket = make_ticket()

        ticket.enter_status(
            TicketStatus.SCHEDULED,
            {"scheduled_date": "2026-01-16", "time_slot": "NOON"},
            AT,
        )

        assert ticket.scheduled_date == date(2026, 1, 16)
        assert ticket.scheduled_slot == TimeSlot.NOON
        assert ticket.scheduled_set_at == AT

    def test_stage_timestamps(self):
        ticket = make_ticket()

        ticket.enter_status(TicketStatus.ON_ROUTE, {}, AT)
        ticket.enter_status(TicketStatus.ARRIVED, {}, AT)

        assert ticket.trip_started_at == AT
        assert ticket.arrived_at == AT

    def test_diagnosed_keeps_notes(self):
        ticket = make_ticket()

        ticket.enter_status(TicketStatus.DIAGNOSED, {"diagnosis_notes": "  Drain pump blocked  "}, AT)

        assert ticket.diagnosis_notes == "Drain pump blocked"
        assert ticket.diagnosed_at == AT

    def test_completed_sets_confirmation_and_repair_notes(self):
        ticket = make_ticket()

        ticket.enter_status(
            TicketStatus.COMPLETED,
            {"confirmation_type": "otp", "repair_notes": "Pump replaced"},
            AT,
        )

        assert ticket.confirmation_type == ConfirmationType.OTP
        assert ticket.repair_notes == "Pump replaced"
        assert ticket.completed_at == AT
        assert ticket.is_terminal

    def test_not_fixed_normalizes_reasons(self):
        ticket = make_ticket()

        ticket.enter_status(
            TicketStatus.NOT_FIXED,
            {"reasons": ["parts_unavailable", "SAFETY_CONCERN"], "notes": "Gas smell"},
            AT,
        )

        assert ticket.not_fixed_reasons == ["parts_unavailable", "safety_concern"]
        assert ticket.internal_notes == "Gas smell"
        assert ticket.closed_at == AT

    def test_cancelled_keeps_reason(self):
        ticket = make_ticket()

        ticket.enter_status(TicketStatus.CANCELLED, {"reason": "Duplicate request"}, AT)

        assert ticket.cancellation_reason == "Duplicate request"
        assert ticket.closed_at == AT


class TestForceStatus:

    def test_reopening_clears_closing_timestamps(self):
        ticket = make_ticket()
        ticket.enter_status(TicketStatus.NOT_FIXED, {"reasons": ["other"]}, AT)

        ticket.force_status(TicketStatus.DIAGNOSED, AT)

        assert ticket.status == TicketStatus.DIAGNOSED
        assert ticket.closed_at is None
        assert ticket.completed_at is None

    def test_forcing_terminal_stamps_it(self):
        ticket = make_ticket()

        ticket.force_status(TicketStatus.CANCELLED, AT)

        assert ticket.closed_at == AT
        assert ticket.is_terminal


class TestSlotStart:

    def test_none_without_schedule(self):
        assert make_ticket().slot_start(timezone.utc) is None

    @pytest.mark.parametrize("slot,hour", [
        (TimeSlot.MORNING, 8),
        (TimeSlot.NOON, 12),
        (TimeSlot.EVENING, 17),
    ])
    def test_slot_start_hour(self, slot, hour):
        ticket = make_ticket()
        ticket.scheduled_date = date(2026, 1, 16)
        ticket.scheduled_slot = slot

        assert ticket.slot_start(timezone.utc) == datetime(2026, 1, 16, hour, 0, tzinfo=timezone.utc)


class TestLookups:

    @pytest.mark.parametrize("raw", ["on_route", "ON_ROUTE", " On_Route "])
    def test_status_from_name_or_value(self, raw):
        assert TicketStatus.from_string(raw) == TicketStatus.ON_ROUTE

    def test_unknown_value_raises(self):
        with pytest.raises(ValueError):
            ActorRole.from_string("janitor")

    def test_non_string_raises(self):
        with pytest.raises(ValueError):
            TicketStatus.from_string(3)

    def test_terminal_statuses(self):
        terminal = {s for s in TicketStatus if s.is_terminal}

        assert terminal == {TicketStatus.COMPLETED, TicketStatus.NOT_FIXED, TicketStatus.CANCELLED}

    def test_not_fixed_codes(self):
        assert "parts_unavailable" in NotFixedReason.codes()
        assert "bad_weather" not in NotFixedReason.codes()


class TestLocation:

    def test_from_payload(self):
        location = Location.from_payload({"latitude": 41, "longitude": 28.9})

        assert location == Location(latitude=41.0, longitude=28.9)

    @pytest.mark.parametrize("value", [
        None,
        "41,28",
        {"latitude": 41.0},
        {"latitude": "41.0", "longitude": "28.9"},
        {"latitude": True, "longitude": 28.9},
    ])
    def test_rejects_non_numeric(self, value):
        assert Location.from_payload(value) is None


class TestEscalation:

    @pytest.mark.parametrize("escalation_type,level", [
        (EscalationType.ASSIGNMENT_DELAY, EscalationLevel.L1),
        (EscalationType.SLA_BREACH, EscalationLevel.L1),
        (EscalationType.REPEAT_FAILURE, EscalationLevel.L2),
        (EscalationType.STUCK_STATE, EscalationLevel.L3),
    ])
    def test_level_follows_type(self, escalation_type, level):
        escalation = Escalation(ticket_id="t-1", type=escalation_type, reason="r", created_at=AT)

        assert escalation.level == level
        assert escalation.resolved is False

    def test_resolve(self):
        escalation = Escalation(ticket_id="t-1", type=EscalationType.STUCK_STATE, reason="r", created_at=AT)

        escalation.resolve(AT)

        assert escalation.resolved
        assert escalation.resolved_at == AT
