"""Email notification module using the Resend transactional API."""

import logging

import requests

from .config import ResendConfig
from .messages import RenderedMessage
from .models import ChannelResult

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailNotifier:
    """Sends HTML + plain-text emails from a verified sender address."""

    name = "Email"

    def __init__(self, config: ResendConfig, timeout: float = 10.0):
        self.config = config
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key and self.config.from_email)

    def send(self, to_email: str, message: RenderedMessage) -> ChannelResult:
        """
        Send an email notification.

        Args:
            to_email: Recipient address from the global settings.
            message: Rendered message; both bodies are sent.

        Returns:
            ChannelResult; failures are reported, never raised.
        """
        if not self.configured:
            return ChannelResult(self.name, False, "RESEND_API_KEY / RESEND_FROM is not configured")
        if not to_email:
            return ChannelResult(self.name, False, "Missing recipient address")

        try:
            response = requests.post(
                RESEND_API_URL,
                json={
                    "from": self.config.from_email,
                    "to": to_email,
                    "subject": message.subject,
                    "html": message.html.replace("\n", "<br>"),
                    "text": message.text,
                },
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
            try:
                data = response.json()
            except ValueError:
                data = {}
        except requests.RequestException as e:
            logger.error(f"Failed to send email: {e}")
            return ChannelResult(self.name, False, f"Network error: {e}")

        if not response.ok:
            error = data.get("error") if isinstance(data, dict) else None
            if isinstance(error, dict):
                detail = error.get("message")
            else:
                detail = data.get("message") if isinstance(data, dict) else None
            detail = detail or "Resend request failed"
            logger.error(f"Failed to send email ({response.status_code}): {detail}")
            return ChannelResult(self.name, False, f"Resend error ({response.status_code}): {detail}")

        logger.info(f"Email sent successfully to {to_email}")
        logger.debug(f"Subject: {message.subject}")
        return ChannelResult(self.name, True)
