"""Abstract LLM client interface and AI error types."""

from abc import ABC, abstractmethod
from typing import Optional


class AIError(Exception):
    """A structured, user-actionable AI failure identified by ``code``."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class AIRequestError(Exception):
    """A failed call to an AI backend."""

    def __init__(self, message: str, status: Optional[int] = None, timeout: bool = False):
        super().__init__(message)
        self.status = status
        self.timeout = timeout


class LLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def complete(self, prompt: str, model: str) -> str:
        """
        Complete a prompt using the LLM.

        Args:
            prompt: The prompt to send to the LLM.
            model: Model name to use for this call.

        Returns:
            The LLM's response text (trimmed).

        Raises:
            AIRequestError: If the backend call fails or times out.
        """
        pass
