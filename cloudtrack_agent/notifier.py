"""Fan notifications out to every eligible channel."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from .config import AppConfig
from .email_notifier import EmailNotifier
from .messages import RenderedMessage, render_change_message, render_expiry_message
from .models import ChannelResult, GlobalSettings, Resource
from .policy import EffectivePolicy, resolve_policy
from .telegram_notifier import TelegramNotifier
from .webhook_notifier import WebhookNotifier

logger = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    """Aggregated outcome of one dispatch across channels."""
    channels_sent: List[str] = field(default_factory=list)
    results: List[ChannelResult] = field(default_factory=list)
    skipped: bool = False  # resource opted out; not an error

    @property
    def success(self) -> bool:
        return len(self.channels_sent) > 0

    @property
    def failures(self) -> List[ChannelResult]:
        return [result for result in self.results if not result.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "channels": list(self.channels_sent),
            "failures": [{"channel": r.channel, "error": r.error} for r in self.failures],
        }


class Notifier:
    """
    Composes policy resolution and channel senders.

    Channels are attempted in a fixed order (Telegram, Email, Webhook). A
    channel is attempted only when the policy selects it, the global settings
    hold its target (chat id, address, URL) and its process secret is present;
    otherwise it is skipped silently. A failing channel never stops the others.
    """

    def __init__(
        self,
        config: AppConfig,
        telegram: Optional[TelegramNotifier] = None,
        email: Optional[EmailNotifier] = None,
        webhook: Optional[WebhookNotifier] = None,
    ):
        timeout = config.sweep.notify_timeout_seconds
        self.telegram = telegram or TelegramNotifier(config.telegram, timeout=timeout)
        self.email = email or EmailNotifier(config.resend, timeout=timeout)
        self.webhook = webhook or WebhookNotifier(timeout=timeout)

    def notify(self, resource: Resource, days_remaining: Union[int, float], settings: GlobalSettings) -> NotificationResult:
        """Send an expiry reminder for one resource."""
        policy = resolve_policy(resource, settings)
        if not policy.enabled:
            logger.info(f"Notifications disabled for resource {resource.id}; skipping")
            return NotificationResult(skipped=True)

        message = render_expiry_message(resource, days_remaining)
        envelope = {
            "event": "expiration_alert",
            "resource": resource.to_dict(),
            "days_remaining": days_remaining,
            "message": message.text,
        }
        return self._dispatch(policy, settings, message, envelope)

    def notify_change(
        self,
        action: str,
        resource: Resource,
        settings: GlobalSettings,
        changes: Sequence[str] = (),
    ) -> NotificationResult:
        """Send a created/updated/deleted notice for one resource."""
        policy = resolve_policy(resource, settings)
        if not policy.enabled:
            return NotificationResult(skipped=True)

        message = render_change_message(action, resource, changes)
        envelope = {
            "event": f"resource_{action}",
            "resource": resource.to_dict(),
            "changes": list(changes),
            "message": message.text,
        }
        return self._dispatch(policy, settings, message, envelope)

    def _dispatch(
        self,
        policy: EffectivePolicy,
        settings: GlobalSettings,
        message: RenderedMessage,
        envelope: Dict[str, Any],
    ) -> NotificationResult:
        result = NotificationResult()

        attempts = []
        if policy.channels.telegram and settings.telegram.chat_id and self.telegram.configured:
            attempts.append((self.telegram, settings.telegram.chat_id, message))
        if policy.channels.email and settings.email.email and self.email.configured:
            attempts.append((self.email, settings.email.email, message))
        if policy.channels.webhook and settings.webhook.url and self.webhook.configured:
            attempts.append((self.webhook, settings.webhook.url, envelope))

        for sender, target, payload in attempts:
            try:
                outcome = sender.send(target, payload)
            except Exception as e:
                logger.error(f"{sender.name} send raised: {e}", exc_info=True)
                outcome = ChannelResult(sender.name, False, str(e))

            result.results.append(outcome)
            if outcome.ok:
                result.channels_sent.append(sender.name)
            else:
                logger.error(f"{sender.name} send failed: {outcome.error}")

        return result
