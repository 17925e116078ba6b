"""AI analysis and assistant replies over the tracked resources."""

import json
import logging
from datetime import date
from typing import List, Optional, Sequence

from .ai_fallback import AIResult, ClientFactory, create_client, run_ai_with_fallback
from .ai_providers import resolve_provider
from .config import AIConfig
from .expiry import NO_EXPIRY, days_remaining
from .llm_client import AIError, AIRequestError
from .models import Resource
from .openai_client import list_models

logger = logging.getLogger(__name__)

MAX_PROMPT_RESOURCES = 80

ERROR_MESSAGES = {
    "MISSING_OPENAI_KEY": "OpenAI API key is not configured.",
    "MISSING_DEEPSEEK_KEY": "DeepSeek API key is not configured.",
    "MISSING_OPENROUTER_KEY": "OpenRouter API key is not configured.",
    "MISSING_GITHUB_MODELS": "GitHub Models configuration is incomplete.",
    "MISSING_CUSTOM_BASE": "Custom AI endpoint is not configured.",
    "MISSING_GEMINI_KEY": "Gemini API key is not configured.",
    "NO_AI_PROVIDER": "No AI provider is configured. Add an API key and try again.",
    "AI_TIMEOUT": "The AI took too long to answer. Try again, or ask a shorter question.",
    "AI_RATE_LIMIT": "Too many AI requests right now. Please try again shortly.",
    "AI_MODEL_NOT_FOUND": "The configured AI model does not exist. Check the model name or pick another.",
    "AI_MODEL_UNAVAILABLE": "The AI model has no available upstream channel. Try again later or switch models.",
    "AI_UPSTREAM_UNAVAILABLE": "The AI service is temporarily unavailable. Please try again later.",
    "CUSTOM_ENDPOINT_NOT_FOUND": "The selected custom endpoint does not exist.",
    "UNSUPPORTED_PROVIDER": "This AI provider is not supported.",
    "AI_BACKEND_ERROR": "The AI is temporarily unavailable. Please try again later.",
}


def classify_ai_error(error: BaseException) -> str:
    """Map any exception from the AI path onto a client-facing error code."""
    if isinstance(error, AIError):
        return error.code

    message = str(error).lower()
    status = error.status if isinstance(error, AIRequestError) else None

    if (isinstance(error, AIRequestError) and error.timeout) or "timed out" in message:
        return "AI_TIMEOUT"
    if status == 429 or "(429)" in message or "rate limit" in message:
        return "AI_RATE_LIMIT"
    if "model_not_found" in message or "model not found" in message:
        return "AI_MODEL_NOT_FOUND"
    if "distributor" in message or "no available channel" in message:
        return "AI_MODEL_UNAVAILABLE"
    if status in (502, 503, 504) or "(503)" in message or "service unavailable" in message or "network" in message:
        return "AI_UPSTREAM_UNAVAILABLE"
    return "AI_BACKEND_ERROR"


def error_message(code: str) -> str:
    return ERROR_MESSAGES.get(code, ERROR_MESSAGES["AI_BACKEND_ERROR"])


def compact_resources(resources: Sequence[Resource], today: Optional[date] = None) -> list:
    """Trim resources to the fields the model needs."""
    compact = []
    for resource in list(resources)[:MAX_PROMPT_RESOURCES]:
        remaining = days_remaining(resource.expiry_date, today)
        compact.append({
            "id": resource.id,
            "name": resource.name,
            "provider": resource.provider,
            "type": resource.type.value,
            "expiryDate": resource.expiry_date,
            "daysRemaining": None if remaining == NO_EXPIRY else remaining,
            "cost": resource.cost,
            "currency": resource.currency,
            "billingCycle": resource.billing_cycle.value if resource.billing_cycle else None,
            "autoRenew": resource.auto_renew,
            "tags": resource.tags,
            "status": resource.status,
        })
    return compact


def build_analysis_prompt(resources: Sequence[Resource], today: Optional[date] = None) -> str:
    """
    Build the advisor prompt for a portfolio analysis.

    Args:
        resources: Resources to analyze.
        today: Reference date for days remaining.

    Returns:
        A formatted prompt string.
    """
    data = json.dumps(compact_resources(resources, today), ensure_ascii=False)
    return f"""You are a System Administrator Advisor. Analyze the following JSON list of VPS, domain, phone number and account resources.

Data:
{data}

Please provide a concise summary report in Markdown format covering:
1. **Urgent Alerts**: Any items expiring in the next 30 days.
2. **Cost Analysis**: Total monthly/yearly projection.
3. **Optimization Tips**: Suggestions on consolidation or renewal strategies.

Keep the tone professional and helpful.
"""


def build_assistant_prompt(resources: Sequence[Resource], question: str, today: Optional[date] = None) -> str:
    data = json.dumps(compact_resources(resources, today), ensure_ascii=False)
    return f"""You are the CloudTrack assistant. You help the user understand and manage IT assets.

Resources (JSON, compact):
{data}

User question:
{question}

Rules:
- Reply concisely and in a friendly tone.
- Keep answers short (3-8 lines).
- If the question is about assets, use the data above.
- Do not include JSON in the response.
"""


def analyze_resources(
    resources: Sequence[Resource],
    config: AIConfig,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    custom_id: Optional[str] = None,
    today: Optional[date] = None,
    client_factory: ClientFactory = create_client,
) -> AIResult:
    """
    Produce a Markdown analysis of the given resources.

    Raises:
        AIError: For configuration problems (missing keys, unknown provider).
        Exception: The last backend error when every candidate failed.
    """
    prompt = build_analysis_prompt(resources, today)
    logger.info(f"Analyzing {len(resources)} resource(s) (provider={provider or 'default'})")
    return run_ai_with_fallback(
        config,
        prompt,
        preferred_provider=provider,
        preferred_model=model,
        custom_id=custom_id,
        client_factory=client_factory,
    )


def ask_assistant(
    resources: Sequence[Resource],
    question: str,
    config: AIConfig,
    today: Optional[date] = None,
    client_factory: ClientFactory = create_client,
) -> AIResult:
    """Answer a free-form question about the resources with a short reply."""
    prompt = build_assistant_prompt(resources, question, today)
    return run_ai_with_fallback(config, prompt, max_tokens=500, client_factory=client_factory)


def list_custom_models(config: AIConfig, custom_id: Optional[str] = None) -> List[str]:
    """
    List the models served by a custom endpoint (the first one, or ``custom_id``).

    Raises:
        AIError: If no custom endpoint is configured or ``custom_id`` is unknown.
        AIRequestError: If the endpoint's model listing fails.
    """
    candidate = resolve_provider(config, "custom", custom_id)[0]
    logger.info(f"Listing models for custom endpoint {candidate.label}")
    return list_models(candidate)
