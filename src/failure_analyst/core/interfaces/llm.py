"""
Reasoning Service Protocol

Contract for the language-model reasoning service used by the agent loop,
the hypothesis generator and the evaluator. Implementations own retries and
backoff; callers only see a completion or an error.
"""

from typing import Protocol


class ReasoningServiceProtocol(Protocol):
    """Submits a prompt and returns the model's text response."""

    async def submit(self, prompt: str) -> str:
        """
        Send a prompt to the model.

        Args:
            prompt: Complete prompt text

        Returns:
            Model response text

        Raises:
            RateLimitedError: Rate limiting persisted after the client's retries
            ReasoningServiceError: Any other service failure
        """
        ...
