"""
Recurrence schedule evaluation.

Contract:
    Pure functions -- no I/O, no clock.  Given a recurrence's schedule and a
    reference month, list the occurrence dates that fall in that month and
    the key each occurrence is deduplicated by.

Occurrence rules:
    monthly   -- one occurrence on due_day (clamped to the month length) in
                 every month the window touches.
    yearly    -- like monthly, but only in the month of start_date.
    daily     -- every day of the month inside the window.
    weekly    -- start_date + 7k days, inside the window.
    biweekly  -- start_date + 14k days, inside the window.

    Month-keyed frequencies are windowed by month: a monthly bill starting
    on the 20th with due day 15 still falls due on the 15th of its start
    month, and one ending on the 10th still falls due on the 15th of its
    end month.  Day-anchored frequencies stay inside [start_date, end_date].

Dedup keys:
    Month-anchored frequencies (monthly, yearly) produce one occurrence per
    month and are keyed by month; day-anchored frequencies are keyed by the
    exact date so several occurrences in one month stay distinct.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from fatura_kernel.domain.competencia import (
    clamp_day,
    competencia_bounds,
    competencia_of,
    parse_competencia,
    shift_competencia,
)
from fatura_kernel.exceptions import InvalidRecurrenceError, RecurrenceWindowError
from fatura_kernel.models.recurrence import Frequency

_STEP_DAYS = {
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
}

MONTH_KEYED: frozenset[Frequency] = frozenset({Frequency.MONTHLY, Frequency.YEARLY})

# Longest gap between two occurrences of any frequency, in months.
_SEARCH_HORIZON_MONTHS = 13


@dataclass(frozen=True)
class RecurrenceSchedule:
    """The scheduling fields of a recurrence, validated."""

    recurrence_id: str
    frequency: Frequency
    due_day: int
    start_date: date
    end_date: date | None = None

    @classmethod
    def build(
        cls,
        recurrence_id: str | None,
        frequency: str,
        due_day: int,
        start_date: date,
        end_date: date | None = None,
    ) -> RecurrenceSchedule:
        """
        Validate raw schedule fields.

        Raises:
            InvalidRecurrenceError: unknown frequency, due day outside
                1..31, or end date before start date.
        """
        try:
            freq = Frequency(frequency)
        except ValueError:
            raise InvalidRecurrenceError(
                recurrence_id, f"unknown frequency {frequency!r}"
            ) from None
        if due_day is None or not 1 <= due_day <= 31:
            raise InvalidRecurrenceError(
                recurrence_id, f"due day {due_day} out of range 1..31"
            )
        if end_date is not None and end_date < start_date:
            raise RecurrenceWindowError(recurrence_id, start_date, end_date)
        return cls(
            recurrence_id=recurrence_id or "",
            frequency=freq,
            due_day=due_day,
            start_date=start_date,
            end_date=end_date,
        )

    def overlaps(self, reference_month: str) -> bool:
        month_start, month_end = competencia_bounds(reference_month)
        if self.start_date > month_end:
            return False
        return self.end_date is None or self.end_date >= month_start

    def occurrences_in_month(self, reference_month: str) -> list[date]:
        if not self.overlaps(reference_month):
            return []
        year, month = parse_competencia(reference_month)
        month_start, month_end = competencia_bounds(reference_month)

        if self.frequency in MONTH_KEYED:
            if self.frequency == Frequency.YEARLY and month != self.start_date.month:
                return []
            return [clamp_day(year, month, self.due_day)]

        first = max(self.start_date, month_start)
        last = month_end if self.end_date is None else min(self.end_date, month_end)

        if self.frequency == Frequency.DAILY:
            return [first + timedelta(days=n) for n in range((last - first).days + 1)]

        step = _STEP_DAYS[self.frequency]
        offset = (first - self.start_date).days
        current = self.start_date + timedelta(days=-(-offset // step) * step)
        dates: list[date] = []
        while current <= last:
            dates.append(current)
            current += timedelta(days=step)
        return dates

    def dedup_key(self, occurrence: date) -> str:
        if self.frequency in MONTH_KEYED:
            return f"recurrence:{self.recurrence_id}@{competencia_of(occurrence)}"
        return f"recurrence:{self.recurrence_id}@{occurrence.isoformat()}"

    def first_occurrence(self) -> date | None:
        return self.next_occurrence_after(self.start_date.replace(day=1) - timedelta(days=1))

    def next_occurrence_after(self, after: date) -> date | None:
        """First occurrence strictly after ``after``, or None past the end date."""
        month = competencia_of(after)
        for _ in range(_SEARCH_HORIZON_MONTHS + 1):
            month_start, _ = competencia_bounds(month)
            if self.end_date is not None and month_start > self.end_date:
                return None
            for occurrence in self.occurrences_in_month(month):
                if occurrence > after:
                    return occurrence
            month = shift_competencia(month, 1)
        return None
