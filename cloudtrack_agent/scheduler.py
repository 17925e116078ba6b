"""Scheduling logic for the daily sweep."""

from datetime import date
from typing import Optional

from .expiry import parse_date


def should_run_now(last_sweep: Optional[str], today: date) -> bool:
    """
    Determine if a scheduled sweep should run.

    Logic:
    - If last_sweep is None, return True (first run).
    - If last_sweep is today or later, return False (already ran today).
    - Otherwise return True.

    Manual triggers bypass this check; they always run a full sweep.

    Args:
        last_sweep: Date key of the last completed sweep, or None if never run.
        today: The sweep's notion of today.

    Returns:
        True if the sweep should run now, False otherwise.
    """
    if not last_sweep:
        return True
    try:
        last = parse_date(last_sweep)
    except ValueError:
        return True
    return last < today
