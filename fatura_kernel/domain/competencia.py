"""
Competencia -- billing-cycle arithmetic.

Responsibility:
    Maps a purchase date and a card's billing terms to the billing cycle
    ("competencia", a ``YYYY-MM`` key) the purchase belongs to and to the
    date that cycle's invoice falls due.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Used by the accrual
    service, the lifecycle sweep and the recurrence schedule.

Rules:
    - A purchase strictly before the closing day belongs to its own month;
      on or after the closing day it rolls to the next month.
    - The invoice is due on the due day of the month after the competencia,
      or two months after when the due day is numerically smaller than the
      closing day (the due day then lands after the month rollover).
    - Day numbers that do not exist in a month (31 in April, 30 in
      February) clamp to that month's last day, for both the closing and
      the due day.
"""

import calendar
import re
from datetime import date
from typing import Protocol

from fatura_kernel.domain.dtos import CycleResolution

_COMPETENCIA_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


class BillingTerms(Protocol):
    closing_day: int
    due_day: int


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    """Date for ``day`` in the given month, clamped to the month's last day."""
    return date(year, month, min(day, days_in_month(year, month)))


def add_months(value: date, months: int) -> date:
    """Shift ``value`` by whole months, clamping the day (Jan 31 + 1 -> Feb 28)."""
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    return clamp_day(year, month + 1, value.day)


def format_competencia(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def competencia_of(value: date) -> str:
    return format_competencia(value.year, value.month)


def parse_competencia(value: str) -> tuple[int, int]:
    """
    Parse a ``YYYY-MM`` key.

    Raises:
        ValueError: value is not a valid key.
    """
    match = _COMPETENCIA_RE.match(value or "")
    if match is None:
        raise ValueError(f"Invalid competencia {value!r}, expected YYYY-MM")
    return int(match.group(1)), int(match.group(2))


def shift_competencia(competencia: str, months: int) -> str:
    year, month = parse_competencia(competencia)
    return competencia_of(add_months(date(year, month, 1), months))


def competencia_bounds(competencia: str) -> tuple[date, date]:
    """First and last calendar day of the cycle month."""
    year, month = parse_competencia(competencia)
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def closing_date_for(competencia: str, closing_day: int) -> date:
    """Date on which the invoice for ``competencia`` closes."""
    year, month = parse_competencia(competencia)
    return clamp_day(year, month, closing_day)


def due_date_for(competencia: str, closing_day: int, due_day: int) -> date:
    """Date on which the invoice for ``competencia`` falls due."""
    _validate_day("closing_day", closing_day)
    _validate_day("due_day", due_day)
    offset = 1 if due_day >= closing_day else 2
    year, month = parse_competencia(shift_competencia(competencia, offset))
    return clamp_day(year, month, due_day)


def resolve_cycle(purchase_date: date, card: BillingTerms) -> CycleResolution:
    """
    Resolve the billing cycle and due date for a purchase.

    Args:
        purchase_date: Date the purchase was made.
        card: Anything carrying ``closing_day`` and ``due_day`` (a Card
            model, a CardInfo DTO).

    Returns:
        CycleResolution with the competencia key and the invoice due date.

    Raises:
        ValueError: closing_day or due_day outside 1..31.
    """
    _validate_day("closing_day", card.closing_day)
    _validate_day("due_day", card.due_day)

    effective_closing = min(
        card.closing_day, days_in_month(purchase_date.year, purchase_date.month)
    )
    if purchase_date.day < effective_closing:
        competencia = competencia_of(purchase_date)
    else:
        competencia = competencia_of(add_months(purchase_date.replace(day=1), 1))

    return CycleResolution(
        competencia=competencia,
        due_date=due_date_for(competencia, card.closing_day, card.due_day),
        closing_date=closing_date_for(competencia, card.closing_day),
    )


def _validate_day(name: str, day: int) -> None:
    if not 1 <= day <= 31:
        raise ValueError(f"{name} must be between 1 and 31, got {day}")
