"""Try AI provider/model candidates in order until one answers."""

import logging
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence

from .ai_providers import GEMINI, ProviderCandidate, build_candidates, dedupe
from .config import AIConfig, AIRuntimeSettings
from .llm_client import AIError, AIRequestError, LLMClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ProviderCandidate, AIRuntimeSettings], LLMClient]

_FAILOVER_MARKERS = (
    "timed out",
    "(429)",
    "rate limit",
    "(503)",
    "service unavailable",
    "model_not_found",
    "model not found",
    "no available channel",
    "distributor",
    "network",
)


@dataclass
class AIResult:
    """A successful answer and where it came from."""
    text: str
    provider: str
    model: str
    custom_id: Optional[str] = None
    attempts: int = 1


def is_failover_worthy(error: BaseException) -> bool:
    """Transient or infrastructure failures: timeouts, 429/503, missing model, no upstream channel, network."""
    if isinstance(error, AIRequestError):
        if error.timeout or error.status in (429, 503):
            return True
    message = str(error).lower()
    return any(marker in message for marker in _FAILOVER_MARKERS)


def create_client(candidate: ProviderCandidate, runtime: AIRuntimeSettings) -> LLMClient:
    """Instantiate the client matching the candidate's kind."""
    if candidate.kind == GEMINI:
        from .gemini_client import GeminiClient
        return GeminiClient(candidate, runtime)
    from .openai_client import OpenAICompatibleClient
    return OpenAICompatibleClient(candidate, runtime)


def model_candidates(candidate: ProviderCandidate) -> List[str]:
    return dedupe([candidate.model, *candidate.model_fallbacks])


def run_with_fallback(
    prompt: str,
    candidates: Sequence[ProviderCandidate],
    runtime: AIRuntimeSettings,
    client_factory: ClientFactory = create_client,
) -> AIResult:
    """
    Attempt every (provider, model) pair in order and return the first answer.

    Every failure moves on to the next pair; failover-worthy errors and other
    errors are only logged differently. There is no delay between candidates.

    Raises:
        AIError: NO_AI_PROVIDER if ``candidates`` is empty.
        Exception: The last error observed when every pair failed.
    """
    if not candidates:
        raise AIError("NO_AI_PROVIDER", "No available AI provider configured")

    last_error: Optional[BaseException] = None
    attempts = 0

    for candidate in candidates:
        try:
            client = client_factory(candidate, runtime)
        except Exception as e:
            last_error = e
            logger.warning(f"[ai:fallback] cannot create client for {candidate.label}: {e}")
            continue

        for model in model_candidates(candidate):
            attempts += 1
            try:
                text = client.complete(prompt, model)
            except Exception as e:
                last_error = e
                if is_failover_worthy(e):
                    logger.warning(f"[ai:fallback] failover to next candidate after {candidate.label}/{model}: {e}")
                else:
                    logger.warning(f"[ai:fallback] non-failover error from {candidate.label}/{model}, trying next candidate: {e}")
                continue

            logger.info(f"[ai:fallback] answered by {candidate.label}/{model} after {attempts} attempt(s)")
            return AIResult(
                text=text,
                provider=candidate.provider,
                model=model,
                custom_id=candidate.custom_id,
                attempts=attempts,
            )

    raise last_error


def run_ai_with_fallback(
    config: AIConfig,
    prompt: str,
    preferred_provider: Optional[str] = None,
    preferred_model: Optional[str] = None,
    custom_id: Optional[str] = None,
    max_tokens: Optional[int] = None,
    client_factory: ClientFactory = create_client,
) -> AIResult:
    """Build candidates from configuration and run the fallback chain."""
    runtime = config.runtime
    if max_tokens:
        runtime = replace(runtime, max_tokens=max_tokens)
    candidates = build_candidates(config, preferred_provider, preferred_model, custom_id)
    return run_with_fallback(prompt, candidates, runtime, client_factory)
