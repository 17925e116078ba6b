"""Render notification messages for markup and plain-text channels."""

from dataclasses import dataclass
from html import escape
from typing import List, Sequence, Tuple, Union

from .models import Resource

CHANGE_ACTIONS = ("created", "updated", "deleted")

_ACTION_TITLES = {
    "created": "🆕 Resource added",
    "updated": "✏️ Resource updated",
    "deleted": "🗑 Resource deleted",
}

# Fields compared when describing an update, with their display labels.
_TRACKED_FIELDS = (
    ("name", "Name"),
    ("provider", "Provider"),
    ("type", "Type"),
    ("expiryDate", "Expiry date"),
    ("startDate", "Start date"),
    ("cost", "Cost"),
    ("currency", "Currency"),
    ("billingCycle", "Billing cycle"),
    ("status", "Status"),
    ("autoRenew", "Auto renew"),
    ("notes", "Notes"),
)


@dataclass
class RenderedMessage:
    """One message rendered for every transport."""
    subject: str
    html: str  # Telegram (parse_mode=HTML) and email
    text: str  # webhook and email plain-text part


def _format_cost(resource: Resource) -> str:
    cost = resource.cost
    amount = f"{int(cost)}" if float(cost).is_integer() else f"{cost:.2f}"
    return f"{resource.currency}{amount}"


def expiry_status(days: Union[int, float]) -> str:
    if days < 0:
        return f"Expired {abs(int(days))} day(s) ago"
    if days == 0:
        return "Expires today"
    return f"{int(days)} day(s) left"


def _render(subject: str, title: str, rows: Sequence[Tuple[str, str]], footer: str) -> RenderedMessage:
    html_lines = [f"<b>{escape(title)}</b>", ""]
    text_lines = [title, ""]
    for label, value in rows:
        html_lines.append(f"<b>{escape(label)}:</b> {escape(value)}")
        text_lines.append(f"{label}: {value}")
    if footer:
        html_lines += ["", escape(footer)]
        text_lines += ["", footer]
    return RenderedMessage(subject=subject, html="\n".join(html_lines), text="\n".join(text_lines))


def render_expiry_message(resource: Resource, days: Union[int, float]) -> RenderedMessage:
    """
    Render an expiry reminder.

    User-controlled fields are HTML-escaped in the markup body only.
    """
    rows = [
        ("📦 Asset", resource.name),
        ("🏢 Provider", resource.provider),
        ("⏳ Status", expiry_status(days)),
        ("📅 Expires", resource.expiry_date or "-"),
        ("💰 Cost", _format_cost(resource)),
    ]
    if resource.notes:
        rows.append(("📝 Notes", resource.notes))
    return _render(
        subject=f"Renewal reminder: {resource.name} ({expiry_status(days)})",
        title=f"⚠️ Renewal reminder: {resource.name}",
        rows=rows,
        footer="Please renew in time to avoid service interruption.",
    )


def describe_changes(before: dict, after: dict) -> List[str]:
    """List human-readable field changes between two wire-form resources."""
    changes = []
    for key, label in _TRACKED_FIELDS:
        old, new = before.get(key), after.get(key)
        if old != new:
            changes.append(f"{label}: {old if old not in (None, '') else '-'} → {new if new not in (None, '') else '-'}")
    return changes


def render_change_message(action: str, resource: Resource, changes: Sequence[str] = ()) -> RenderedMessage:
    """
    Render a resource change notice.

    Raises:
        ValueError: If ``action`` is not created, updated or deleted.
    """
    if action not in CHANGE_ACTIONS:
        raise ValueError(f"Unknown change action: {action}")

    rows = [
        ("📦 Asset", resource.name),
        ("🏢 Provider", resource.provider),
        ("📅 Expires", resource.expiry_date or "-"),
        ("💰 Cost", _format_cost(resource)),
    ]
    rows += [("🔄 Change", change) for change in changes]
    return _render(
        subject=f"{_ACTION_TITLES[action].split(' ', 1)[1]}: {resource.name}",
        title=f"{_ACTION_TITLES[action]}: {resource.name}",
        rows=rows,
        footer="",
    )
