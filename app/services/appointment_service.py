"""
Recurring Appointment Service
=============================
Creates the successor of a completed recurring appointment.

Two variants are exposed:
- create_next_appointment: full RFC 5545 RRULE evaluation (python-dateutil)
- process_appointment_completion: fixed FREQ/INTERVAL string matching
"""

import re
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from dateutil.relativedelta import relativedelta
from dateutil.rrule import rrulestr

from app.models.document_model import AppointmentRecord
from app.services.brokerage_db_service import brokerage_db_service

logger = logging.getLogger(__name__)

ServiceResponse = Tuple[int, Dict[str, Any]]


class RecurrenceRuleError(Exception):
    """Recurrence rule string could not be parsed."""
    pass


def _base_datetime(date_str: str, time_str: Optional[str]) -> datetime:
    """Combine the stored date and time (HH:MM or HH:MM:SS) into a naive UTC datetime."""
    return datetime.fromisoformat(f"{date_str}T{time_str or '00:00'}")


def calculate_next_occurrence_rrule(date_str: str, time_str: Optional[str], rule: str) -> Optional[datetime]:
    """
    First occurrence of ``rule`` strictly after the appointment's date and time.

    Date and time are interpreted as UTC; time zones inside the rule are ignored.

    Returns:
        The next occurrence, or None when the series is exhausted

    Raises:
        RecurrenceRuleError: the rule cannot be parsed
    """
    base = _base_datetime(date_str, time_str)
    try:
        recurrence = rrulestr(rule, dtstart=base, ignoretz=True)
    except (ValueError, TypeError) as e:
        raise RecurrenceRuleError(str(e)) from e

    return recurrence.after(base, inc=False)


def _interval(rule: str) -> int:
    match = re.search(r"INTERVAL=(\d+)", rule)
    return int(match.group(1)) if match else 1


def calculate_next_date_fixed(date_str: str, time_str: Optional[str], rule: str) -> Tuple[str, Optional[str]]:
    """
    Next date for the simple FREQ rules; the time of day is kept as is.

    DAILY and WEEKLY add INTERVAL days/weeks, MONTHLY and YEARLY add calendar
    months/years (clamped to the month's last day). Any other rule adds one year.

    Returns:
        (next date as YYYY-MM-DD, unchanged time)
    """
    base = _base_datetime(date_str, time_str)
    interval = _interval(rule)

    if "FREQ=DAILY" in rule:
        next_date = base + timedelta(days=interval)
    elif "FREQ=WEEKLY" in rule:
        next_date = base + timedelta(weeks=interval)
    elif "FREQ=MONTHLY" in rule:
        next_date = base + relativedelta(months=interval)
    elif "FREQ=YEARLY" in rule:
        next_date = base + relativedelta(years=interval)
    else:
        next_date = base + relativedelta(years=1)

    return next_date.date().isoformat(), time_str


def _successor(parent: Dict[str, Any], date_str: str, time_str: str, **extra) -> AppointmentRecord:
    return AppointmentRecord(
        user_id=parent["user_id"],
        client_id=parent.get("client_id"),
        policy_id=parent.get("policy_id"),
        title=parent.get("title") or "",
        date=date_str,
        time=time_str,
        status="Pendente",
        notes=parent.get("notes"),
        priority=parent.get("priority") or "Normal",
        recurrence_rule=parent.get("recurrence_rule"),
        is_recurring=True,
        parent_appointment_id=parent.get("parent_appointment_id") or parent["id"],
        **extra,
    )


class AppointmentService:

    def __init__(self, db=None):
        self.db = db if db is not None else brokerage_db_service

    async def create_next_appointment(self, appointment_id: Optional[str], user_id: str) -> ServiceResponse:
        """
        Create the next occurrence of a recurring appointment using its RRULE.

        Returns:
            (HTTP status code, response body)
        """
        if not appointment_id:
            logger.error("❌ [create-next-appointment] appointmentId missing")
            return 400, {"message": "O ID do agendamento (appointmentId) é obrigatório."}

        try:
            appointment = await self.db.get_appointment(appointment_id, user_id)
            if not appointment:
                return 404, {"message": f"Agendamento com ID {appointment_id} não encontrado."}

            rule = appointment.get("recurrence_rule")
            if not rule:
                logger.info(f"ℹ️  [create-next-appointment] {appointment_id} is not recurring")
                return 200, {"message": "Agendamento não é recorrente."}

            base = _base_datetime(appointment["date"], appointment.get("time"))
            try:
                next_occurrence = calculate_next_occurrence_rrule(
                    appointment["date"], appointment.get("time"), rule
                )
            except RecurrenceRuleError as e:
                logger.warning(f"⚠️  [create-next-appointment] Invalid RRULE '{rule}': {e}")
                return 400, {"message": "Regra de recorrência inválida.", "details": str(e)}

            if next_occurrence is None:
                logger.info(f"🏁 [create-next-appointment] Series of {appointment_id} exhausted")
                return 200, {
                    "message": "Fim da série de recorrência. Nenhum próximo agendamento a ser criado."
                }

            record = _successor(
                appointment,
                next_occurrence.date().isoformat(),
                next_occurrence.strftime("%H:%M"),
                original_start_timestamptz=(
                    appointment.get("original_start_timestamptz")
                    or base.strftime("%Y-%m-%dT%H:%M:%S.000Z")
                ),
            )
            new_id = await self.db.insert_appointment(record)

            logger.info(f"✅ [create-next-appointment] {appointment_id} → {new_id} on {record.date} {record.time}")
            return 200, {"message": "Próximo agendamento criado com sucesso.", "newAppointmentId": new_id}

        except Exception as e:
            logger.error(f"❌ [create-next-appointment] Unexpected error: {e}")
            return 500, {"message": "Erro interno do servidor.", "details": str(e)}

    async def process_appointment_completion(self, appointment_id: Optional[str], user_id: str) -> ServiceResponse:
        """
        Create the next occurrence of a recurring appointment using the fixed rules.

        Returns:
            (HTTP status code, response body)
        """
        if not appointment_id:
            return 400, {"error": "appointmentId é obrigatório"}

        try:
            appointment = await self.db.get_appointment(appointment_id, user_id)
        except Exception as e:
            logger.error(f"❌ Error fetching appointment {appointment_id}: {e}")
            return 400, {"error": f"Agendamento não encontrado: {e}"}

        if not appointment:
            return 400, {"error": f"Agendamento não encontrado: {appointment_id}"}

        rule = appointment.get("recurrence_rule")
        if not rule:
            logger.info(f"ℹ️  Appointment {appointment_id} is not recurring, nothing to do")
            return 200, {
                "success": True,
                "message": "Agendamento não recorrente. Nenhuma ação necessária.",
            }

        try:
            next_date, next_time = calculate_next_date_fixed(
                appointment["date"], appointment.get("time"), rule
            )
        except ValueError as e:
            return 400, {"error": f"Data do agendamento inválida: {e}"}

        try:
            new_id = await self.db.insert_appointment(
                _successor(appointment, next_date, next_time or "")
            )
        except Exception as e:
            logger.error(f"❌ Error creating next appointment: {e}")
            return 400, {"error": f"Erro ao criar próximo agendamento: {e}"}

        logger.info(f"✅ Next appointment created: {new_id} on {next_date}")
        return 200, {"success": True, "newAppointmentId": new_id, "nextDate": next_date}


# Global instance
appointment_service = AppointmentService()
