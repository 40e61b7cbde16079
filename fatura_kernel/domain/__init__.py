"""Pure domain logic: billing cycles, money, recurrence schedules, DTOs."""
