"""One full notification pass over all resources."""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from .config import AppConfig
from .db import get_global_settings, list_resources, set_meta, update_resource_notification_state
from .dispatch import DedupCheck, evaluate, was_notified_on
from .expiry import date_key, today_in
from .notifier import Notifier
from .policy import resolve_policy

logger = logging.getLogger(__name__)

LAST_SWEEP_KEY = "last_sweep"


@dataclass
class SweepDetail:
    id: str
    name: str
    days_remaining: int
    channels: List[str]


@dataclass
class SweepReport:
    processed: int = 0
    details: List[SweepDetail] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)  # ids due today with no channel delivered

    @property
    def notifications_sent(self) -> int:
        return len(self.details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "notifications_sent": self.notifications_sent,
            "details": [
                {"id": d.id, "name": d.name, "daysRemaining": d.days_remaining, "channels": d.channels}
                for d in self.details
            ],
        }


def run_sweep(
    conn: sqlite3.Connection,
    config: AppConfig,
    today: Optional[date] = None,
    notifier: Optional[Notifier] = None,
    dedup: DedupCheck = was_notified_on,
) -> SweepReport:
    """
    Evaluate every resource and send the reminders that are due today.

    Resources are processed one at a time; ``lastNotified`` is written only
    after the resource's channels were attempted and at least one delivered.
    A resource whose channels all failed keeps its state, so the next sweep
    retries it.

    Two overlapping sweeps may both send before either records
    ``lastNotified``; the later write wins.
    """
    if today is None:
        today = today_in(config.sweep.timezone)
    if notifier is None:
        notifier = Notifier(config)

    settings = get_global_settings(conn)
    resources = list_resources(conn)
    report = SweepReport(processed=len(resources))
    today_str = date_key(today)

    logger.info(f"Starting sweep for {today_str}: {len(resources)} resource(s)")

    for resource in resources:
        if not resource.expiry_date:
            continue
        try:
            policy = resolve_policy(resource, settings)
            if not policy.enabled:
                continue

            decision = evaluate(
                resource,
                policy,
                today,
                overdue_repeat_days=config.sweep.overdue_repeat_days,
                dedup=dedup,
            )
            if not decision.fire:
                if decision.should_notify:
                    logger.debug(f"Resource {resource.id} already notified on {today_str}")
                continue

            result = notifier.notify(resource, decision.days_remaining, settings)
            if not result.success:
                logger.warning(
                    f"No channel delivered for resource {resource.id} "
                    f"({decision.days_remaining} days); will retry next sweep"
                )
                report.failed.append(resource.id)
                continue

            update_resource_notification_state(conn, resource.id, today_str)
            report.details.append(SweepDetail(
                id=resource.id,
                name=resource.name,
                days_remaining=int(decision.days_remaining),
                channels=result.channels_sent,
            ))
        except ValueError as e:
            logger.error(f"Skipping resource {resource.id}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error processing resource {resource.id}: {e}", exc_info=True)

    set_meta(conn, LAST_SWEEP_KEY, today_str)
    logger.info(
        f"Sweep completed: processed={report.processed}, "
        f"sent={report.notifications_sent}, failed={len(report.failed)}"
    )
    return report
