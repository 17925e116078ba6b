"""Decide whether a resource is due for an expiry reminder today."""

from datetime import date
from typing import Callable, Optional, Union

from .expiry import NO_EXPIRY, date_key, days_remaining
from .models import DispatchDecision, Resource
from .policy import EffectivePolicy

CRITICAL_MILESTONES = (3, 1, 0)
OVERDUE_NUDGE = -1

DedupCheck = Callable[[Resource, date], bool]


def was_notified_on(resource: Resource, day: date) -> bool:
    """Same-day de-duplication: plain string equality on the calendar date."""
    settings = resource.notification_settings
    if settings is None or not settings.last_notified:
        return False
    return settings.last_notified == date_key(day)


def is_due(
    days: Union[int, float],
    threshold_days: int,
    overdue_repeat_days: Optional[int] = None,
) -> bool:
    """
    Whether ``days`` remaining matches a reminder point.

    Reminder points are the configured threshold, the fixed milestones 3, 1
    and 0, and a single overdue nudge at -1. Resources further overdue are not
    reminded again unless ``overdue_repeat_days`` asks for a reminder every N
    days after the nudge.
    """
    if days == NO_EXPIRY:
        return False
    if days == threshold_days or days in CRITICAL_MILESTONES or days == OVERDUE_NUDGE:
        return True
    if overdue_repeat_days and days < OVERDUE_NUDGE:
        return (OVERDUE_NUDGE - days) % overdue_repeat_days == 0
    return False


def should_fire_today(
    days: Union[int, float],
    threshold_days: int,
    last_notified: Optional[str],
    today: date,
    overdue_repeat_days: Optional[int] = None,
) -> bool:
    """Fire when a reminder point matches and nothing was sent earlier today."""
    if last_notified == date_key(today):
        return False
    return is_due(days, threshold_days, overdue_repeat_days)


def evaluate(
    resource: Resource,
    policy: EffectivePolicy,
    today: date,
    overdue_repeat_days: Optional[int] = None,
    dedup: DedupCheck = was_notified_on,
) -> DispatchDecision:
    """Compute the dispatch decision for one resource in one sweep."""
    days = days_remaining(resource.expiry_date, today)
    return DispatchDecision(
        days_remaining=days,
        effective_threshold=policy.threshold_days,
        should_notify=policy.enabled and is_due(days, policy.threshold_days, overdue_repeat_days),
        already_sent_today=dedup(resource, today),
    )
