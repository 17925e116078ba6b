"""Gemini LLM client implementation."""

import logging

import httpx
from google import genai
from google.genai import errors, types

from .ai_providers import ProviderCandidate
from .config import AIRuntimeSettings
from .llm_client import AIRequestError, LLMClient

logger = logging.getLogger(__name__)


class GeminiClient(LLMClient):
    """Google Gemini client; the request timeout is enforced by the SDK transport."""

    def __init__(self, candidate: ProviderCandidate, runtime: AIRuntimeSettings):
        self.candidate = candidate
        self.runtime = runtime
        self.client = genai.Client(
            api_key=candidate.api_key,
            http_options=types.HttpOptions(timeout=runtime.timeout_ms),
        )

    def complete(self, prompt: str, model: str) -> str:
        try:
            response = self.client.models.generate_content(
                model=model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=self.runtime.temperature,
                    max_output_tokens=self.runtime.max_tokens,
                ),
            )
        except errors.APIError as e:
            raise AIRequestError(f"Gemini request failed ({e.code}): {e.message}", status=e.code) from e
        except httpx.TimeoutException as e:
            raise AIRequestError(f"AI request timed out after {self.runtime.timeout_ms}ms", timeout=True) from e
        except httpx.TransportError as e:
            raise AIRequestError(f"Gemini network error: {e.__class__.__name__}") from e
        return (response.text or "").strip()
