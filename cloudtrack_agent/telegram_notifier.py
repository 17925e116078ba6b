"""Telegram Bot API notification module."""

import logging
import re
from typing import Optional

import requests

from .config import TelegramConfig
from .messages import RenderedMessage
from .models import ChannelResult

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org/bot"


def _api_url(token: str, method: str) -> str:
    # Tolerate tokens pasted with their "bot" prefix.
    clean_token = re.sub(r"^bot", "", token, flags=re.IGNORECASE)
    return f"{TELEGRAM_API_BASE}{clean_token}/{method}"


class TelegramNotifier:
    """Sends HTML-formatted messages through a Telegram bot."""

    name = "Telegram"

    def __init__(self, config: TelegramConfig, timeout: float = 10.0):
        self.config = config
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.config.bot_token)

    def send(self, chat_id: str, message: RenderedMessage) -> ChannelResult:
        """
        Send a message to a chat.

        Args:
            chat_id: Target chat id from the global settings.
            message: Rendered message; the HTML body is sent with parse_mode=HTML.

        Returns:
            ChannelResult; failures are reported, never raised.
        """
        return self.send_text(chat_id, message.html, parse_mode="HTML")

    def send_text(self, chat_id: str, text: str, parse_mode: Optional[str] = None) -> ChannelResult:
        if not self.configured:
            return ChannelResult(self.name, False, "TELEGRAM_BOT_TOKEN is not configured")
        if not chat_id:
            return ChannelResult(self.name, False, "Missing chat id")

        payload = {"chat_id": chat_id, "text": text, "disable_web_page_preview": True}
        if parse_mode:
            payload["parse_mode"] = parse_mode

        try:
            response = requests.post(
                _api_url(self.config.bot_token, "sendMessage"),
                json=payload,
                timeout=self.timeout,
            )
            try:
                data = response.json()
            except ValueError:
                data = {}
        except requests.RequestException as e:
            logger.error(f"Telegram request failed: {e.__class__.__name__}")
            return ChannelResult(self.name, False, f"Network error: {e.__class__.__name__}")

        if not response.ok or not data.get("ok"):
            description = data.get("description") or response.reason or "unknown error"
            logger.error(f"Telegram sendMessage failed ({response.status_code}): {description}")
            return ChannelResult(self.name, False, f"Telegram API error ({response.status_code}): {description}")

        logger.info(f"Telegram message sent to chat {chat_id}")
        return ChannelResult(self.name, True)
