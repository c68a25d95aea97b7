"""Overdue computation.

Pure functions of a loan's dates and a reference day.  Nothing here is
stored: callers recompute on every read because "today" moves.
"""

from __future__ import annotations

from datetime import date

ON_TIME = "on time"
LATE = "late"


def days_overdue(due_date: date, return_date: date | None, today: date) -> int:
    """Days past due, measured to the return date or, for open loans, to today."""
    reference = return_date if return_date is not None else today
    if reference > due_date:
        return (reference - due_date).days
    return 0


def situation(days: int) -> str:
    return LATE if days > 0 else ON_TIME
