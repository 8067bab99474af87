"""Tests for recurring appointment successors."""

from datetime import datetime

import pytest

from app.services.appointment_service import (
    AppointmentService,
    RecurrenceRuleError,
    calculate_next_date_fixed,
    calculate_next_occurrence_rrule,
)
from tests.factories import OTHER_USER_ID, USER_ID


def add_appointment(db, **overrides):
    data = {
        "id": "appt-1",
        "user_id": USER_ID,
        "client_id": "client-1",
        "policy_id": "policy-1",
        "title": "Renovação Maria",
        "date": "2025-03-10",
        "time": "09:30",
        "status": "Realizado",
        "notes": "Ligar antes",
        "priority": "Alta",
        "recurrence_rule": "FREQ=DAILY;INTERVAL=3",
        "parent_appointment_id": None,
        "original_start_timestamptz": None,
    }
    data.update(overrides)
    return db.add("appointments", **data)


class TestCalculateNextDateFixed:

    @pytest.mark.parametrize("rule, expected", [
        ("FREQ=DAILY;INTERVAL=3", "2025-03-13"),
        ("FREQ=DAILY", "2025-03-11"),
        ("FREQ=WEEKLY;INTERVAL=2", "2025-03-24"),
        ("FREQ=MONTHLY", "2025-04-10"),
        ("FREQ=YEARLY", "2026-03-10"),
        ("FREQ=HOURLY", "2026-03-10"),
    ])
    def test_rules(self, rule, expected) -> None:
        assert calculate_next_date_fixed("2025-03-10", "09:30", rule) == (expected, "09:30")

    def test_monthly_clamps_to_month_end(self) -> None:
        assert calculate_next_date_fixed("2025-01-31", "10:00", "FREQ=MONTHLY")[0] == "2025-02-28"
        assert calculate_next_date_fixed("2024-01-31", "10:00", "FREQ=MONTHLY")[0] == "2024-02-29"


class TestCalculateNextOccurrenceRrule:

    def test_next_weekly_occurrence(self) -> None:
        result = calculate_next_occurrence_rrule("2025-03-10", "09:30", "FREQ=WEEKLY;BYDAY=MO,WE")
        assert result == datetime(2025, 3, 12, 9, 30)

    def test_accepts_rrule_prefix(self) -> None:
        result = calculate_next_occurrence_rrule("2025-03-10", "09:30", "RRULE:FREQ=MONTHLY;INTERVAL=2")
        assert result == datetime(2025, 5, 10, 9, 30)

    def test_exhausted_series(self) -> None:
        assert calculate_next_occurrence_rrule("2025-03-10", "09:30", "FREQ=DAILY;COUNT=1") is None

    def test_invalid_rule(self) -> None:
        with pytest.raises(RecurrenceRuleError):
            calculate_next_occurrence_rrule("2025-03-10", "09:30", "FREQ=SOMETIMES")


class TestCreateNextAppointment:

    @pytest.mark.asyncio
    async def test_creates_successor(self, fake_db) -> None:
        add_appointment(fake_db)
        service = AppointmentService(db=fake_db)

        status, body = await service.create_next_appointment("appt-1", USER_ID)

        assert status == 200
        assert body["message"] == "Próximo agendamento criado com sucesso."
        created = fake_db.appointments[-1]
        assert body["newAppointmentId"] == created["id"]
        assert created["date"] == "2025-03-13"
        assert created["time"] == "09:30"
        assert created["status"] == "Pendente"
        assert created["priority"] == "Alta"
        assert created["is_recurring"] is True
        assert created["parent_appointment_id"] == "appt-1"
        assert created["recurrence_rule"] == "FREQ=DAILY;INTERVAL=3"
        assert created["original_start_timestamptz"] == "2025-03-10T09:30:00.000Z"

    @pytest.mark.asyncio
    async def test_successor_keeps_series_root(self, fake_db) -> None:
        add_appointment(fake_db, id="appt-2", parent_appointment_id="appt-root",
                        original_start_timestamptz="2025-01-01T09:30:00.000Z")
        service = AppointmentService(db=fake_db)

        status, _ = await service.create_next_appointment("appt-2", USER_ID)

        assert status == 200
        created = fake_db.appointments[-1]
        assert created["parent_appointment_id"] == "appt-root"
        assert created["original_start_timestamptz"] == "2025-01-01T09:30:00.000Z"

    @pytest.mark.asyncio
    async def test_missing_id(self, fake_db) -> None:
        status, body = await AppointmentService(db=fake_db).create_next_appointment(None, USER_ID)
        assert status == 400
        assert "appointmentId" in body["message"]

    @pytest.mark.asyncio
    async def test_not_found_for_other_tenant(self, fake_db) -> None:
        add_appointment(fake_db)
        status, _ = await AppointmentService(db=fake_db).create_next_appointment("appt-1", OTHER_USER_ID)
        assert status == 404

    @pytest.mark.asyncio
    async def test_not_recurring(self, fake_db) -> None:
        add_appointment(fake_db, recurrence_rule=None)
        status, body = await AppointmentService(db=fake_db).create_next_appointment("appt-1", USER_ID)
        assert status == 200
        assert body == {"message": "Agendamento não é recorrente."}
        assert len(fake_db.appointments) == 1

    @pytest.mark.asyncio
    async def test_invalid_rule(self, fake_db) -> None:
        add_appointment(fake_db, recurrence_rule="FREQ=SOMETIMES")
        status, body = await AppointmentService(db=fake_db).create_next_appointment("appt-1", USER_ID)
        assert status == 400
        assert body["message"] == "Regra de recorrência inválida."
        assert "details" in body

    @pytest.mark.asyncio
    async def test_series_exhausted(self, fake_db) -> None:
        add_appointment(fake_db, recurrence_rule="FREQ=DAILY;COUNT=1")
        status, body = await AppointmentService(db=fake_db).create_next_appointment("appt-1", USER_ID)
        assert status == 200
        assert "Fim da série" in body["message"]
        assert len(fake_db.appointments) == 1


class TestProcessAppointmentCompletion:

    @pytest.mark.asyncio
    async def test_creates_successor(self, fake_db) -> None:
        add_appointment(fake_db, recurrence_rule="FREQ=MONTHLY", date="2025-01-31")
        service = AppointmentService(db=fake_db)

        status, body = await service.process_appointment_completion("appt-1", USER_ID)

        assert status == 200
        assert body["success"] is True
        assert body["nextDate"] == "2025-02-28"
        created = fake_db.appointments[-1]
        assert created["id"] == body["newAppointmentId"]
        assert created["time"] == "09:30"
        assert created["is_recurring"] is True
        assert created["parent_appointment_id"] == "appt-1"

    @pytest.mark.asyncio
    async def test_not_recurring(self, fake_db) -> None:
        add_appointment(fake_db, recurrence_rule="")
        status, body = await AppointmentService(db=fake_db).process_appointment_completion("appt-1", USER_ID)
        assert status == 200
        assert body["success"] is True
        assert len(fake_db.appointments) == 1

    @pytest.mark.asyncio
    async def test_missing_or_unknown_id(self, fake_db) -> None:
        service = AppointmentService(db=fake_db)
        status, body = await service.process_appointment_completion("", USER_ID)
        assert status == 400
        assert "error" in body

        status, body = await service.process_appointment_completion("nope", USER_ID)
        assert status == 400
        assert "não encontrado" in body["error"]

    @pytest.mark.asyncio
    async def test_insert_failure(self, fake_db) -> None:
        add_appointment(fake_db)

        async def broken_insert(record):
            raise RuntimeError("write refused")

        fake_db.insert_appointment = broken_insert
        status, body = await AppointmentService(db=fake_db).process_appointment_completion("appt-1", USER_ID)

        assert status == 400
        assert body["error"] == "Erro ao criar próximo agendamento: write refused"
