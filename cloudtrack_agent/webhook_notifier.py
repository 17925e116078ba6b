"""Outgoing webhook notification module."""

import logging
from typing import Any, Dict

import requests

from .models import ChannelResult

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """
    POSTs a JSON envelope to a user-configured URL.

    There is no signature: the URL itself is the shared secret. One attempt
    per dispatch, no retry.
    """

    name = "Webhook"

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return True

    def send(self, url: str, envelope: Dict[str, Any]) -> ChannelResult:
        if not url:
            return ChannelResult(self.name, False, "Missing webhook URL")
        try:
            response = requests.post(url, json=envelope, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Webhook request failed: {e.__class__.__name__}")
            return ChannelResult(self.name, False, f"Network error: {e.__class__.__name__}")

        if not response.ok:
            logger.error(f"Webhook returned HTTP {response.status_code}")
            return ChannelResult(self.name, False, f"Webhook returned HTTP {response.status_code}")

        logger.info(f"Webhook delivered ({envelope.get('event')})")
        return ChannelResult(self.name, True)
