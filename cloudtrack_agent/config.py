"""Configuration management."""

import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class TelegramConfig:
    """Telegram bot configuration."""
    bot_token: Optional[str]  # process-wide secret, never per resource


@dataclass
class ResendConfig:
    """Transactional email (Resend) configuration."""
    api_key: Optional[str]
    from_email: Optional[str]  # must be a verified sender


@dataclass
class CustomEndpoint:
    """A self-hosted OpenAI-compatible endpoint."""
    id: str
    url: str
    key: Optional[str] = None
    default_model: Optional[str] = None


@dataclass
class AIRuntimeSettings:
    """Per-request knobs for OpenAI-compatible calls."""
    timeout_ms: int = 45000
    retries: int = 1
    retry_delay_ms: int = 800
    temperature: float = 0.4
    max_tokens: int = 800


@dataclass
class AIConfig:
    """AI provider credentials and model preferences."""
    openai_api_key: Optional[str] = None
    deepseek_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    openrouter_site_url: Optional[str] = None
    openrouter_app_title: Optional[str] = None
    github_token: Optional[str] = None
    github_models_url: Optional[str] = None
    gemini_api_key: Optional[str] = None
    custom_endpoints: List[CustomEndpoint] = field(default_factory=list)
    custom_endpoint: Optional[str] = None   # single full endpoint URL
    custom_base_url: Optional[str] = None   # base URL, path appended if missing
    custom_api_key: Optional[str] = None
    default_provider: Optional[str] = None
    default_model: Optional[str] = None
    provider_models: Dict[str, str] = field(default_factory=dict)  # AI_<PROVIDER>_MODEL
    runtime: AIRuntimeSettings = field(default_factory=AIRuntimeSettings)


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    api_secret: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 8787


@dataclass
class SweepConfig:
    """Notification sweep configuration."""
    timezone: str = "UTC"
    notify_timeout_seconds: float = 10.0
    overdue_repeat_days: Optional[int] = None  # None keeps the single -1 nudge


@dataclass
class AppConfig:
    """Complete application configuration."""
    db_path: str
    telegram: TelegramConfig
    resend: ResendConfig
    ai: AIConfig
    server: ServerConfig
    sweep: SweepConfig


AI_PROVIDERS = ("openai", "deepseek", "openrouter", "github", "custom", "gemini")


def _parse_number(value: Optional[str], default):
    """Parse a number from an environment string, keeping the default on garbage."""
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    if parsed != parsed or parsed in (float("inf"), float("-inf")):
        return default
    return type(default)(parsed) if isinstance(default, int) else parsed


def _optional(key: str) -> Optional[str]:
    value = os.getenv(key, "").strip()
    return value or None


def parse_custom_endpoints(raw: Optional[str]) -> List[CustomEndpoint]:
    """
    Parse custom endpoint definitions.

    Each entry is ``id|url|key|defaultModel``; entries are separated by newlines
    or semicolons. Entries without an id or url are skipped.

    Args:
        raw: Raw configuration string.

    Returns:
        List of CustomEndpoint objects, in declaration order.
    """
    if not raw:
        return []

    endpoints = []
    for line in re.split(r"\r?\n|;", raw):
        line = line.strip()
        if not line:
            continue
        parts = [part.strip() for part in line.split("|")]
        parts += [""] * (4 - len(parts))
        endpoint_id, url, key, default_model = parts[:4]
        if not endpoint_id or not url:
            continue
        endpoints.append(CustomEndpoint(
            id=endpoint_id,
            url=url,
            key=key or None,
            default_model=default_model or None,
        ))
    return endpoints


def load_runtime_settings() -> AIRuntimeSettings:
    """Load AI runtime settings, clamping retries and tokens to sane minimums."""
    defaults = AIRuntimeSettings()
    return AIRuntimeSettings(
        timeout_ms=max(1, _parse_number(os.getenv("AI_TIMEOUT_MS"), defaults.timeout_ms)),
        retries=max(0, _parse_number(os.getenv("AI_RETRIES"), defaults.retries)),
        retry_delay_ms=max(0, _parse_number(os.getenv("AI_RETRY_DELAY_MS"), defaults.retry_delay_ms)),
        temperature=_parse_number(os.getenv("AI_TEMPERATURE"), defaults.temperature),
        max_tokens=max(1, _parse_number(os.getenv("AI_MAX_TOKENS"), defaults.max_tokens)),
    )


def load_ai_config() -> AIConfig:
    """Load AI provider configuration from environment variables."""
    provider_models = {}
    for provider in AI_PROVIDERS:
        model = _optional(f"AI_{provider.upper()}_MODEL")
        if model:
            provider_models[provider] = model

    return AIConfig(
        openai_api_key=_optional("OPENAI_API_KEY"),
        deepseek_api_key=_optional("DEEPSEEK_API_KEY"),
        openrouter_api_key=_optional("OPENROUTER_API_KEY"),
        openrouter_site_url=_optional("OPENROUTER_SITE_URL"),
        openrouter_app_title=_optional("OPENROUTER_APP_TITLE"),
        github_token=_optional("GITHUB_TOKEN"),
        github_models_url=_optional("GITHUB_MODELS_URL"),
        # API_KEY is the historical name of the Gemini key
        gemini_api_key=_optional("GEMINI_API_KEY") or _optional("API_KEY"),
        custom_endpoints=parse_custom_endpoints(os.getenv("CUSTOM_AI_ENDPOINTS")),
        custom_endpoint=_optional("CUSTOM_AI_ENDPOINT"),
        custom_base_url=_optional("CUSTOM_AI_BASE_URL"),
        custom_api_key=_optional("CUSTOM_AI_API_KEY"),
        default_provider=_optional("AI_DEFAULT_PROVIDER"),
        default_model=_optional("AI_DEFAULT_MODEL"),
        provider_models=provider_models,
        runtime=load_runtime_settings(),
    )


def load_config() -> AppConfig:
    """
    Load configuration from environment variables.

    Every channel and provider is optional: a missing secret disables the
    corresponding feature instead of failing startup.

    Raises:
        ValueError: If OVERDUE_REPEAT_DAYS is set to something other than a positive integer.
    """
    overdue_raw = _optional("OVERDUE_REPEAT_DAYS")
    overdue_repeat_days = None
    if overdue_raw:
        try:
            overdue_repeat_days = int(overdue_raw)
        except ValueError:
            raise ValueError(f"OVERDUE_REPEAT_DAYS must be an integer, got {overdue_raw!r}")
        if overdue_repeat_days <= 0:
            raise ValueError("OVERDUE_REPEAT_DAYS must be positive")

    return AppConfig(
        db_path=os.getenv("DB_PATH", "cloudtrack.db"),
        telegram=TelegramConfig(
            bot_token=_optional("TELEGRAM_BOT_TOKEN"),
        ),
        resend=ResendConfig(
            api_key=_optional("RESEND_API_KEY"),
            from_email=_optional("RESEND_FROM"),
        ),
        ai=load_ai_config(),
        server=ServerConfig(
            api_secret=_optional("API_SECRET"),
            host=os.getenv("HOST", "127.0.0.1"),
            port=_parse_number(os.getenv("PORT"), 8787),
        ),
        sweep=SweepConfig(
            timezone=os.getenv("TIMEZONE", "UTC"),
            notify_timeout_seconds=_parse_number(os.getenv("NOTIFY_TIMEOUT_SECONDS"), 10.0),
            overdue_repeat_days=overdue_repeat_days,
        ),
    )
