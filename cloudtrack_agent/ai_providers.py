"""AI provider catalog and candidate list construction."""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .config import AI_PROVIDERS, AIConfig, CustomEndpoint
from .llm_client import AIError

logger = logging.getLogger(__name__)

OPENAI_COMPATIBLE = "openai-compatible"
GEMINI = "gemini"

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "deepseek": "deepseek-chat",
    "openrouter": "openai/gpt-4o-mini",
    "github": "gpt-4o-mini",
    "custom": "gpt-4o-mini",
    "gemini": "gemini-1.5-flash",
}

# Tried after the configured models, in order.
FALLBACK_MODELS = {
    "openai": ["gpt-4o-mini", "gpt-4.1-mini", "gpt-3.5-turbo"],
    "deepseek": ["deepseek-chat"],
    "openrouter": ["openai/gpt-4o-mini", "google/gemini-flash-1.5"],
    "github": ["gpt-4o-mini", "gpt-4o"],
    "custom": ["gpt-4o-mini", "gpt-3.5-turbo"],
    "gemini": ["gemini-1.5-flash", "gemini-2.0-flash"],
}

PROVIDER_URLS = {
    "openai": "https://api.openai.com/v1/chat/completions",
    "deepseek": "https://api.deepseek.com/chat/completions",
    "openrouter": "https://openrouter.ai/api/v1/chat/completions",
}

PROVIDER_ERRORS = {
    "openai": ("MISSING_OPENAI_KEY", "OpenAI API key is not configured"),
    "deepseek": ("MISSING_DEEPSEEK_KEY", "DeepSeek API key is not configured"),
    "openrouter": ("MISSING_OPENROUTER_KEY", "OpenRouter API key is not configured"),
    "github": ("MISSING_GITHUB_MODELS", "GitHub Models configuration is incomplete"),
    "custom": ("MISSING_CUSTOM_BASE", "Custom endpoint address is not configured"),
    "gemini": ("MISSING_GEMINI_KEY", "Gemini API key is not configured"),
}


@dataclass
class ProviderCandidate:
    """One provider configuration to try, with its ordered models."""
    provider: str
    kind: str  # OPENAI_COMPATIBLE or GEMINI
    model: str
    model_fallbacks: List[str] = field(default_factory=list)
    api_key: Optional[str] = None
    url: Optional[str] = None
    extra_headers: Dict[str, str] = field(default_factory=dict)
    mode: str = "chat"  # chat or completion
    custom_id: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.provider}:{self.custom_id}" if self.custom_id else self.provider


def dedupe(values: Iterable[Optional[str]]) -> List[str]:
    """Drop empty and repeated values, keeping first occurrences in order."""
    seen = set()
    result = []
    for value in values:
        value = (value or "").strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def detect_mode(url: str) -> str:
    """Chat-style requests for ``.../chat/completions`` URLs, completion-style otherwise."""
    return "chat" if re.search(r"/chat/completions/?$", url, re.IGNORECASE) else "completion"


def _custom_url(config: AIConfig) -> str:
    if config.custom_endpoint:
        return config.custom_endpoint.strip()
    base = config.custom_base_url.strip().rstrip("/")
    if re.search(r"/(chat/completions|completions)$", base, re.IGNORECASE):
        return base
    return f"{base}/v1/chat/completions"


def _models_for(config: AIConfig, provider: str, endpoint_default: Optional[str] = None) -> List[str]:
    # AI_DEFAULT_MODEL only applies to the default provider
    default_model = config.default_model if provider == default_provider(config) else None
    return dedupe([
        config.provider_models.get(provider),
        default_model,
        endpoint_default,
        DEFAULT_MODELS[provider],
        *FALLBACK_MODELS[provider],
    ])


def _candidate(config: AIConfig, provider: str, kind: str, endpoint_default: Optional[str] = None, **kwargs) -> ProviderCandidate:
    models = _models_for(config, provider, endpoint_default)
    return ProviderCandidate(provider=provider, kind=kind, model=models[0], model_fallbacks=models[1:], **kwargs)


def _custom_candidate(config: AIConfig, endpoint: CustomEndpoint) -> ProviderCandidate:
    return _candidate(
        config, "custom", OPENAI_COMPATIBLE,
        endpoint_default=endpoint.default_model,
        api_key=endpoint.key or config.custom_api_key,
        url=endpoint.url,
        mode=detect_mode(endpoint.url),
        custom_id=endpoint.id,
    )


def resolve_provider(config: AIConfig, provider: str, custom_id: Optional[str] = None) -> List[ProviderCandidate]:
    """
    Resolve a provider into one or more candidates.

    ``custom`` expands into one candidate per configured endpoint; a matching
    ``custom_id`` is placed first.

    Raises:
        AIError: If the provider is unknown, lacks credentials, or ``custom_id``
            names no configured endpoint.
    """
    if provider not in AI_PROVIDERS:
        raise AIError("UNSUPPORTED_PROVIDER", f"Unsupported provider: {provider}")

    def missing():
        code, message = PROVIDER_ERRORS[provider]
        return AIError(code, message)

    if provider == "openai":
        if not config.openai_api_key:
            raise missing()
        return [_candidate(config, provider, OPENAI_COMPATIBLE, api_key=config.openai_api_key, url=PROVIDER_URLS[provider])]

    if provider == "deepseek":
        if not config.deepseek_api_key:
            raise missing()
        return [_candidate(config, provider, OPENAI_COMPATIBLE, api_key=config.deepseek_api_key, url=PROVIDER_URLS[provider])]

    if provider == "openrouter":
        if not config.openrouter_api_key:
            raise missing()
        headers = {}
        if config.openrouter_site_url:
            headers["HTTP-Referer"] = config.openrouter_site_url
        if config.openrouter_app_title:
            headers["X-Title"] = config.openrouter_app_title
        return [_candidate(
            config, provider, OPENAI_COMPATIBLE,
            api_key=config.openrouter_api_key, url=PROVIDER_URLS[provider], extra_headers=headers,
        )]

    if provider == "github":
        if not config.github_token or not config.github_models_url:
            raise missing()
        return [_candidate(
            config, provider, OPENAI_COMPATIBLE,
            api_key=config.github_token, url=config.github_models_url,
            extra_headers={"Accept": "application/vnd.github+json"},
        )]

    if provider == "custom":
        endpoints = list(config.custom_endpoints)
        if endpoints:
            if custom_id:
                selected = [e for e in endpoints if e.id == custom_id]
                if not selected:
                    raise AIError("CUSTOM_ENDPOINT_NOT_FOUND", f"Custom endpoint '{custom_id}' does not exist")
                endpoints = selected + [e for e in endpoints if e.id != custom_id]
            return [_custom_candidate(config, endpoint) for endpoint in endpoints]
        if not config.custom_endpoint and not config.custom_base_url:
            raise missing()
        url = _custom_url(config)
        return [_candidate(config, provider, OPENAI_COMPATIBLE, api_key=config.custom_api_key, url=url, mode=detect_mode(url))]

    # gemini
    if not config.gemini_api_key:
        raise missing()
    return [_candidate(config, provider, GEMINI, api_key=config.gemini_api_key)]


def has_custom_config(config: AIConfig) -> bool:
    return bool(config.custom_endpoints or config.custom_endpoint or config.custom_base_url)


def default_provider(config: AIConfig) -> str:
    if config.default_provider:
        return config.default_provider
    if has_custom_config(config):
        return "custom"
    return "openai"


def provider_order(config: AIConfig, preferred: Optional[str] = None) -> List[str]:
    """Preferred (or default) provider first, then the rest in fixed order."""
    primary = preferred or default_provider(config)
    return [primary] + [p for p in AI_PROVIDERS if p != primary]


def build_candidates(
    config: AIConfig,
    preferred_provider: Optional[str] = None,
    preferred_model: Optional[str] = None,
    custom_id: Optional[str] = None,
) -> List[ProviderCandidate]:
    """
    Build the ordered candidate list for one AI call.

    Providers lacking credentials are left out. An explicitly requested
    provider that is unsupported, or a ``custom_id`` that does not exist,
    raises immediately. When nothing at all is available the error of the
    explicitly requested provider is raised, or NO_AI_PROVIDER otherwise.

    The caller's preferred model is put first on the candidates of the
    preferred provider.

    Raises:
        AIError: As described above.
    """
    order = provider_order(config, preferred_provider)
    primary = order[0]
    if preferred_provider and preferred_provider not in AI_PROVIDERS:
        raise AIError("UNSUPPORTED_PROVIDER", f"Unsupported provider: {preferred_provider}")

    candidates = []
    primary_error = None
    for provider in order:
        try:
            resolved = resolve_provider(config, provider, custom_id if provider == "custom" else None)
        except AIError as e:
            if e.code == "CUSTOM_ENDPOINT_NOT_FOUND" and provider == primary:
                raise
            if provider == primary:
                primary_error = e
            logger.debug(f"AI provider {provider} unavailable: {e.code}")
            continue
        for candidate in resolved:
            if preferred_model and provider == primary:
                models = dedupe([preferred_model, candidate.model, *candidate.model_fallbacks])
                candidate.model, candidate.model_fallbacks = models[0], models[1:]
            candidates.append(candidate)

    if not candidates:
        if preferred_provider and primary_error is not None:
            raise primary_error
        raise AIError("NO_AI_PROVIDER", "No available AI provider configured")
    return candidates
