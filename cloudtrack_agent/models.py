"""Data models for tracked resources and notification settings."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union


class ResourceType(str, Enum):
    VPS = "VPS"
    DOMAIN = "DOMAIN"
    PHONE_NUMBER = "PHONE_NUMBER"
    ACCOUNT = "ACCOUNT"


class BillingCycle(str, Enum):
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    YEARLY = "Yearly"
    ONE_TIME = "OneTime"


class Status(str, Enum):
    ACTIVE = "Active"
    EXPIRED = "Expired"
    PENDING = "Pending"


CHANNEL_NAMES = ("telegram", "email", "webhook")


@dataclass
class ChannelFlags:
    """Which channels are selected for a resource."""
    telegram: bool = False
    email: bool = False
    webhook: bool = False
    # flags given on input; None when built in code, meaning all of them
    present: Optional[FrozenSet[str]] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ChannelFlags":
        data = data or {}
        return cls(
            **{name: bool(data.get(name, False)) for name in CHANNEL_NAMES},
            present=frozenset(name for name in CHANNEL_NAMES if name in data),
        )

    def to_dict(self) -> Dict[str, bool]:
        return {
            name: getattr(self, name)
            for name in CHANNEL_NAMES
            if self.present is None or name in self.present
        }


@dataclass
class NotificationSettings:
    """
    Per-resource notification override.

    When ``use_global`` is true the ``reminder_days`` and ``channels`` fields are
    ignored even when present. ``last_notified`` is a calendar-date string
    (YYYY-MM-DD) written only by the dispatch path after a confirmed send.
    """
    enabled: bool = True
    use_global: bool = True
    reminder_days: Optional[int] = None
    last_notified: Optional[str] = None
    channels: Optional[ChannelFlags] = None
    extra: Dict[str, Any] = field(default_factory=dict)  # unknown keys, kept for round-trips
    present: Optional[FrozenSet[str]] = field(default=None, compare=False, repr=False)

    _KNOWN_KEYS = ("enabled", "useGlobal", "reminderDays", "lastNotified", "channels")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["NotificationSettings"]:
        if data is None:
            return None
        reminder_days = data.get("reminderDays")
        channels = data.get("channels")
        return cls(
            enabled=data.get("enabled", True) is not False,
            use_global=data.get("useGlobal", True) is not False,
            reminder_days=int(reminder_days) if reminder_days is not None else None,
            last_notified=data.get("lastNotified"),
            channels=ChannelFlags.from_dict(channels) if channels is not None else None,
            extra={k: v for k, v in data.items() if k not in cls._KNOWN_KEYS},
            present=frozenset(k for k in cls._KNOWN_KEYS if k in data),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.present is None or "enabled" in self.present:
            data["enabled"] = self.enabled
        if self.present is None or "useGlobal" in self.present:
            data["useGlobal"] = self.use_global
        if self.reminder_days is not None:
            data["reminderDays"] = self.reminder_days
        if self.last_notified is not None:
            data["lastNotified"] = self.last_notified
        if self.channels is not None:
            data["channels"] = self.channels.to_dict()
        data.update(self.extra)
        return data


@dataclass
class Resource:
    """A tracked asset: VPS, domain, phone number or account."""
    id: str
    name: str
    provider: str = "Unknown"
    type: ResourceType = ResourceType.VPS
    cost: float = 0.0
    currency: str = "$"
    billing_cycle: Optional[BillingCycle] = None
    expiry_date: Optional[str] = None  # YYYY-MM-DD
    start_date: Optional[str] = None
    status: str = Status.ACTIVE.value
    auto_renew: bool = False
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    notification_settings: Optional[NotificationSettings] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Resource":
        """Build a Resource from its camelCase wire form."""
        billing_cycle = data.get("billingCycle")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            provider=data.get("provider") or "Unknown",
            type=ResourceType(data.get("type") or ResourceType.VPS.value),
            cost=float(data.get("cost") or 0),
            currency=data.get("currency") or "$",
            billing_cycle=BillingCycle(billing_cycle) if billing_cycle else None,
            expiry_date=data.get("expiryDate") or None,
            start_date=data.get("startDate") or None,
            status=data.get("status") or Status.ACTIVE.value,
            auto_renew=bool(data.get("autoRenew", False)),
            notes=data.get("notes") or None,
            tags=list(data.get("tags") or []),
            notification_settings=NotificationSettings.from_dict(data.get("notificationSettings")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "type": self.type.value,
            "cost": self.cost,
            "currency": self.currency,
            "billingCycle": self.billing_cycle.value if self.billing_cycle else None,
            "expiryDate": self.expiry_date,
            "startDate": self.start_date,
            "status": self.status,
            "autoRenew": self.auto_renew,
            "notes": self.notes,
            "tags": list(self.tags),
            "notificationSettings": (
                self.notification_settings.to_dict() if self.notification_settings else None
            ),
        }


@dataclass
class TelegramTarget:
    enabled: bool = False
    chat_id: str = ""


@dataclass
class EmailTarget:
    enabled: bool = False
    email: str = ""


@dataclass
class WebhookTarget:
    enabled: bool = False
    url: str = ""


@dataclass
class GlobalSettings:
    """Process-wide notification policy, loaded once per sweep or request."""
    reminder_days: int = 7
    telegram: TelegramTarget = field(default_factory=TelegramTarget)
    email: EmailTarget = field(default_factory=EmailTarget)
    webhook: WebhookTarget = field(default_factory=WebhookTarget)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "GlobalSettings":
        data = data or {}
        telegram = data.get("telegram") or {}
        email = data.get("email") or {}
        webhook = data.get("webhook") or {}
        reminder_days = data.get("reminderDays")
        return cls(
            reminder_days=int(reminder_days) if isinstance(reminder_days, (int, float)) else 7,
            telegram=TelegramTarget(bool(telegram.get("enabled", False)), str(telegram.get("chatId") or "")),
            email=EmailTarget(bool(email.get("enabled", False)), str(email.get("email") or "")),
            webhook=WebhookTarget(bool(webhook.get("enabled", False)), str(webhook.get("url") or "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reminderDays": self.reminder_days,
            "telegram": {"enabled": self.telegram.enabled, "chatId": self.telegram.chat_id},
            "email": {"enabled": self.email.enabled, "email": self.email.email},
            "webhook": {"enabled": self.webhook.enabled, "url": self.webhook.url},
        }


@dataclass
class DispatchDecision:
    """Per-resource, per-sweep evaluation. Never persisted."""
    days_remaining: Union[int, float]
    effective_threshold: int
    should_notify: bool
    already_sent_today: bool

    @property
    def fire(self) -> bool:
        return self.should_notify and not self.already_sent_today


@dataclass
class ChannelResult:
    """Outcome of one channel delivery attempt."""
    channel: str
    ok: bool
    error: Optional[str] = None
