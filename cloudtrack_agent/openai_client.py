"""OpenAI-compatible LLM client implementation."""

import logging
import re
import time
from typing import List
from urllib.parse import urlsplit, urlunsplit

import requests
from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI

from .ai_providers import ProviderCandidate, dedupe
from .config import AIRuntimeSettings
from .llm_client import AIRequestError, LLMClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful IT asset advisor."

MODELS_TIMEOUT_SECONDS = 8.0


class OpenAICompatibleClient(LLMClient):
    """
    HTTP client for OpenAI-compatible endpoints.

    Sends chat-style (``messages``) or completion-style (``prompt``) requests
    depending on the candidate's mode. Timeouts, network errors, HTTP 429 and
    5xx responses are retried ``runtime.retries`` times with a fixed delay.
    """

    def __init__(self, candidate: ProviderCandidate, runtime: AIRuntimeSettings):
        """
        Initialize the client.

        Args:
            candidate: Provider candidate holding URL, key, headers and mode.
            runtime: Timeout, retry and sampling settings.
        """
        self.candidate = candidate
        self.runtime = runtime

    def _payload(self, prompt: str, model: str) -> dict:
        payload = {
            "model": model,
            "temperature": self.runtime.temperature,
            "max_tokens": self.runtime.max_tokens,
        }
        if self.candidate.mode == "chat":
            payload["messages"] = [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ]
        else:
            payload["prompt"] = prompt
        return payload

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.candidate.api_key:
            headers["Authorization"] = f"Bearer {self.candidate.api_key}"
        headers.update(self.candidate.extra_headers)
        return headers

    def _extract_text(self, data: dict) -> str:
        choices = data.get("choices") or [{}]
        choice = choices[0] or {}
        if self.candidate.mode == "chat":
            text = (choice.get("message") or {}).get("content")
        else:
            text = choice.get("text")
        return (text or "").strip()

    def complete(self, prompt: str, model: str) -> str:
        """
        Complete a prompt using an OpenAI-compatible API.

        Args:
            prompt: The prompt to send to the LLM.
            model: Model name.

        Returns:
            The LLM's response text (trimmed); empty if the response had none.

        Raises:
            AIRequestError: When the request fails after all retries.
        """
        timeout_ms = self.runtime.timeout_ms
        retries = self.runtime.retries
        delay = self.runtime.retry_delay_ms / 1000.0

        for attempt in range(retries + 1):
            try:
                response = requests.post(
                    self.candidate.url,
                    json=self._payload(prompt, model),
                    headers=self._headers(),
                    timeout=timeout_ms / 1000.0,
                )
            except requests.Timeout:
                if attempt < retries:
                    logger.warning(f"AI request timed out, retrying (attempt {attempt + 1})")
                    time.sleep(delay)
                    continue
                raise AIRequestError(f"AI request timed out after {timeout_ms}ms", timeout=True)
            except requests.RequestException as e:
                if attempt < retries:
                    logger.warning(f"AI network error, retrying (attempt {attempt + 1}): {e.__class__.__name__}")
                    time.sleep(delay)
                    continue
                raise AIRequestError(f"AI network error: {e.__class__.__name__}") from e

            if not response.ok:
                status = response.status_code
                if (status >= 500 or status == 429) and attempt < retries:
                    logger.warning(f"AI HTTP {status}, retrying (attempt {attempt + 1})")
                    time.sleep(delay)
                    continue
                detail = (response.text or response.reason or "").strip()[:500]
                raise AIRequestError(f"AI request failed ({status}): {detail}", status=status)

            try:
                data = response.json()
            except ValueError as e:
                raise AIRequestError("AI response was not valid JSON") from e
            return self._extract_text(data if isinstance(data, dict) else {})

        # range() always runs at least once and every branch returns, raises or continues
        raise AIRequestError("AI request failed without a response")


def models_base_urls(endpoint_url: str) -> List[str]:
    """
    Candidate base URLs whose ``/models`` listing describes the endpoint.

    ``https://host/v1/chat/completions`` yields ``https://host/v1`` then
    ``https://host``; a base without ``/v1`` is tried with it appended.
    """
    parts = urlsplit(endpoint_url)
    path = parts.path.rstrip("/")
    path = re.sub(r"/(chat/completions|completions|models)$", "", path, flags=re.IGNORECASE)

    if re.search(r"/v1$", path, re.IGNORECASE):
        alternate = path[:-3]
    else:
        alternate = f"{path}/v1"

    return dedupe(
        urlunsplit((parts.scheme, parts.netloc, candidate, "", ""))
        for candidate in (path, alternate)
    )


def list_models(candidate: ProviderCandidate) -> List[str]:
    """
    List the models an OpenAI-compatible endpoint serves.

    Raises:
        AIRequestError: If no listing endpoint answers successfully.
    """
    last_error = None
    for base_url in models_base_urls(candidate.url):
        client = OpenAI(
            api_key=candidate.api_key or "not-required",
            base_url=base_url,
            default_headers=candidate.extra_headers or None,
            timeout=MODELS_TIMEOUT_SECONDS,
            max_retries=0,
        )
        try:
            page = client.models.list()
        except APIStatusError as e:
            last_error = AIRequestError(f"Upstream error ({e.status_code}): {e.message}", status=e.status_code)
            if e.status_code in (404, 405):
                continue
            raise last_error from e
        except APITimeoutError as e:
            raise AIRequestError(f"Model listing timed out after {MODELS_TIMEOUT_SECONDS:g}s", timeout=True) from e
        except APIConnectionError as e:
            raise AIRequestError(f"Model listing network error: {e.__class__.__name__}") from e

        return sorted(dedupe(model.id for model in page.data))

    raise last_error or AIRequestError("No available models endpoint")
