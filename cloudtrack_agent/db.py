"""SQLite storage for resources, global settings and run metadata."""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .expiry import is_valid_date
from .models import CHANNEL_NAMES, BillingCycle, GlobalSettings, Resource, ResourceType

logger = logging.getLogger(__name__)

GLOBAL_SETTINGS_ID = "global"

# wire name -> column name
_COLUMNS = {
    "id": "id",
    "name": "name",
    "provider": "provider",
    "type": "type",
    "cost": "cost",
    "currency": "currency",
    "billingCycle": "billing_cycle",
    "expiryDate": "expiry_date",
    "startDate": "start_date",
    "status": "status",
    "autoRenew": "auto_renew",
    "notes": "notes",
    "tags": "tags",
    "notificationSettings": "notification_settings",
}
_JSON_FIELDS = ("tags", "notificationSettings")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def init_db(db_path: str) -> sqlite3.Connection:
    """
    Initialize the database and create tables if they don't exist.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        A connection to the database.
    """
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("""
        CREATE TABLE IF NOT EXISTS resources (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            provider TEXT NOT NULL DEFAULT 'Unknown',
            type TEXT NOT NULL,
            cost REAL NOT NULL DEFAULT 0,
            currency TEXT NOT NULL DEFAULT '$',
            billing_cycle TEXT,
            expiry_date TEXT,
            start_date TEXT,
            status TEXT NOT NULL DEFAULT 'Active',
            auto_renew INTEGER NOT NULL DEFAULT 0,
            notes TEXT,
            tags TEXT NOT NULL DEFAULT '[]',
            notification_settings TEXT,
            created_at TEXT NOT NULL
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            id TEXT PRIMARY KEY,
            reminder_days INTEGER NOT NULL DEFAULT 7,
            telegram TEXT NOT NULL,
            email TEXT NOT NULL,
            webhook TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)
    conn.commit()
    return conn


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    data = {}
    for wire, column in _COLUMNS.items():
        value = row[column]
        if wire in _JSON_FIELDS:
            value = json.loads(value) if value else None
        elif wire == "autoRenew":
            value = bool(value)
        data[wire] = value
    if data["tags"] is None:
        data["tags"] = []
    return data


def validate_notification_settings(settings: Any) -> None:
    """
    Check the shape of a per-resource notification override.

    Unknown keys are allowed and kept as stored.

    Raises:
        ValueError: If a known key holds a value of the wrong type.
    """
    if not isinstance(settings, dict):
        raise ValueError("notificationSettings must be an object")

    for key in ("enabled", "useGlobal"):
        if key in settings and not isinstance(settings[key], bool):
            raise ValueError(f"notificationSettings.{key} must be a boolean")

    reminder_days = settings.get("reminderDays")
    if reminder_days is not None:
        if isinstance(reminder_days, bool) or not isinstance(reminder_days, int) or reminder_days < 0:
            raise ValueError("notificationSettings.reminderDays must be a non-negative integer")

    channels = settings.get("channels")
    if channels is not None:
        if not isinstance(channels, dict):
            raise ValueError("notificationSettings.channels must be an object")
        for name in CHANNEL_NAMES:
            if name in channels and not isinstance(channels[name], bool):
                raise ValueError(f"notificationSettings.channels.{name} must be a boolean")

    last_notified = settings.get("lastNotified")
    if last_notified is not None and (not isinstance(last_notified, str) or not is_valid_date(last_notified)):
        raise ValueError(f"Invalid notificationSettings.lastNotified: {last_notified!r}")


def normalize_resource(data: Dict[str, Any], resource_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Validate and fill defaults for a resource in wire form.

    Raises:
        ValueError: If a required field is missing or a field is malformed.
    """
    if not data.get("name"):
        raise ValueError("Missing required fields: name")

    resource_type = data.get("type") or ResourceType.VPS.value
    if resource_type not in {t.value for t in ResourceType}:
        raise ValueError(f"Invalid type: {resource_type}")

    billing_cycle = data.get("billingCycle") or None
    if billing_cycle and billing_cycle not in {c.value for c in BillingCycle}:
        raise ValueError(f"Invalid billingCycle: {billing_cycle}")

    for key in ("expiryDate", "startDate"):
        if not is_valid_date(data.get(key)):
            raise ValueError(f"Invalid {key}: {data.get(key)!r}")

    try:
        cost = float(data.get("cost") or 0)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid cost: {data.get('cost')!r}")
    if cost < 0:
        raise ValueError("cost must not be negative")

    settings = data.get("notificationSettings")
    if settings is not None:
        validate_notification_settings(settings)

    return {
        "id": resource_id or data.get("id") or str(uuid.uuid4()),
        "name": data["name"],
        "provider": data.get("provider") or "Unknown",
        "type": resource_type,
        "cost": cost,
        "currency": data.get("currency") or "$",
        "billingCycle": billing_cycle,
        "expiryDate": data.get("expiryDate") or None,
        "startDate": data.get("startDate") or None,
        "status": data.get("status") or "Active",
        "autoRenew": bool(data.get("autoRenew", False)),
        "notes": data.get("notes") or None,
        "tags": list(data.get("tags") or []),
        "notificationSettings": settings,
    }


def _to_row(data: Dict[str, Any]) -> Dict[str, Any]:
    row = {}
    for wire, column in _COLUMNS.items():
        value = data.get(wire)
        if wire in _JSON_FIELDS:
            value = json.dumps(value) if value is not None else None
        elif wire == "autoRenew":
            value = int(bool(value))
        row[column] = value
    if row["tags"] is None:
        row["tags"] = "[]"
    return row


def _upsert(conn: sqlite3.Connection, data: Dict[str, Any]) -> None:
    row = _to_row(data)
    row["created_at"] = _utcnow()
    columns = ", ".join(row)
    placeholders = ", ".join(f":{column}" for column in row)
    updates = ", ".join(f"{column} = excluded.{column}" for column in row if column not in ("id", "created_at"))
    conn.execute(
        f"INSERT INTO resources ({columns}) VALUES ({placeholders}) "
        f"ON CONFLICT(id) DO UPDATE SET {updates}",
        row,
    )


def export_resources(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    """All resources in wire form, newest first, JSON fields exactly as stored."""
    cursor = conn.execute("SELECT * FROM resources ORDER BY created_at DESC, rowid DESC")
    return [_row_to_dict(row) for row in cursor.fetchall()]


def list_resources(conn: sqlite3.Connection) -> List[Resource]:
    """All parseable resources; rows that fail to parse are logged and skipped."""
    resources = []
    for data in export_resources(conn):
        try:
            resources.append(Resource.from_dict(data))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(f"Skipping unreadable resource {data.get('id')}: {e}")
    return resources


def get_resource_dict(conn: sqlite3.Connection, resource_id: str) -> Optional[Dict[str, Any]]:
    cursor = conn.execute("SELECT * FROM resources WHERE id = ?", (resource_id,))
    row = cursor.fetchone()
    return _row_to_dict(row) if row else None


def get_resource(conn: sqlite3.Connection, resource_id: str) -> Optional[Resource]:
    data = get_resource_dict(conn, resource_id)
    return Resource.from_dict(data) if data else None


def insert_resource(conn: sqlite3.Connection, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Insert a new resource.

    Raises:
        ValueError: If validation fails or the id already exists.
    """
    resource = normalize_resource(data)
    if get_resource_dict(conn, resource["id"]) is not None:
        raise ValueError(f"Resource {resource['id']} already exists")
    _upsert(conn, resource)
    conn.commit()
    return resource


def update_resource(conn: sqlite3.Connection, resource_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Apply a partial update; keys absent from ``patch`` are left untouched.

    Returns:
        The updated resource, or None if it does not exist.
    """
    current = get_resource_dict(conn, resource_id)
    if current is None:
        return None
    merged = dict(current)
    merged.update({k: v for k, v in patch.items() if k in _COLUMNS and k != "id"})
    resource = normalize_resource(merged, resource_id=resource_id)
    _upsert(conn, resource)
    conn.commit()
    return resource


def delete_resource(conn: sqlite3.Connection, resource_id: str) -> Optional[Dict[str, Any]]:
    current = get_resource_dict(conn, resource_id)
    if current is None:
        return None
    conn.execute("DELETE FROM resources WHERE id = ?", (resource_id,))
    conn.commit()
    return current


def update_resource_notification_state(conn: sqlite3.Connection, resource_id: str, last_notified: str) -> None:
    """
    Record a confirmed send on a resource.

    The existing notification settings are kept as stored and only
    ``lastNotified`` is replaced. Resources without settings get the global
    defaults.
    """
    cursor = conn.execute("SELECT notification_settings FROM resources WHERE id = ?", (resource_id,))
    row = cursor.fetchone()
    if row is None:
        logger.warning(f"Cannot record notification state: resource {resource_id} not found")
        return
    settings = json.loads(row[0]) if row[0] else {"enabled": True, "useGlobal": True}
    settings["lastNotified"] = last_notified
    conn.execute(
        "UPDATE resources SET notification_settings = ? WHERE id = ?",
        (json.dumps(settings), resource_id),
    )
    conn.commit()


def bulk_import(conn: sqlite3.Connection, items: Iterable[Dict[str, Any]], mode: str = "merge") -> int:
    """
    Import resources in wire form.

    Entries without a name or type are dropped, as are entries that fail
    validation. ``overwrite`` deletes every existing resource first; ``merge``
    inserts new ids and replaces existing ones.

    Returns:
        Number of resources imported.
    """
    if mode not in ("merge", "overwrite"):
        raise ValueError(f"Unknown import mode: {mode}")

    valid = []
    for item in items:
        if not isinstance(item, dict) or not item.get("name") or not item.get("type"):
            continue
        try:
            valid.append(normalize_resource(item))
        except ValueError as e:
            logger.warning(f"Skipping invalid resource {item.get('name')!r}: {e}")

    if not valid:
        return 0

    with conn:
        if mode == "overwrite":
            conn.execute("DELETE FROM resources")
        for resource in valid:
            _upsert(conn, resource)
    return len(valid)


def get_global_settings(conn: sqlite3.Connection) -> GlobalSettings:
    """Load the settings singleton; defaults apply when none were saved."""
    cursor = conn.execute("SELECT * FROM settings WHERE id = ?", (GLOBAL_SETTINGS_ID,))
    row = cursor.fetchone()
    if row is None:
        return GlobalSettings()

    def _load(value):
        try:
            return json.loads(value) if value else {}
        except ValueError:
            return {}

    return GlobalSettings.from_dict({
        "reminderDays": row["reminder_days"],
        "telegram": _load(row["telegram"]),
        "email": _load(row["email"]),
        "webhook": _load(row["webhook"]),
    })


def save_global_settings(conn: sqlite3.Connection, patch: Dict[str, Any]) -> GlobalSettings:
    """Merge ``patch`` into the stored settings, channel by channel."""
    current = get_global_settings(conn).to_dict()
    merged = {
        "reminderDays": patch.get("reminderDays", current["reminderDays"]),
        "telegram": {**current["telegram"], **(patch.get("telegram") or {})},
        "email": {**current["email"], **(patch.get("email") or {})},
        "webhook": {**current["webhook"], **(patch.get("webhook") or {})},
    }
    settings = GlobalSettings.from_dict(merged)
    data = settings.to_dict()
    conn.execute(
        "INSERT OR REPLACE INTO settings (id, reminder_days, telegram, email, webhook, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (
            GLOBAL_SETTINGS_ID,
            data["reminderDays"],
            json.dumps(data["telegram"]),
            json.dumps(data["email"]),
            json.dumps(data["webhook"]),
            _utcnow(),
        ),
    )
    conn.commit()
    return settings


def get_meta(conn: sqlite3.Connection, key: str) -> Optional[str]:
    """
    Get a metadata value from the database.

    Args:
        conn: Database connection.
        key: Metadata key.

    Returns:
        The metadata value, or None if not found.
    """
    cursor = conn.execute("SELECT value FROM meta WHERE key = ?", (key,))
    row = cursor.fetchone()
    return row[0] if row else None


def set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    """
    Set a metadata value in the database.

    Args:
        conn: Database connection.
        key: Metadata key.
        value: Metadata value.
    """
    conn.execute(
        "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
        (key, value)
    )
    conn.commit()
