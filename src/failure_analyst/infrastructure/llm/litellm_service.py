"""
LiteLLM Reasoning Service

Reasoning-service adapter built on LiteLLM. Model aliases, per-model
parameters and the retry policy come from a YAML file (configs/llm_config.yaml).

Only rate-limit failures are retried, with capped exponential backoff and
jitter. Every other failure is raised immediately as ReasoningServiceError.
"""

import asyncio
import os
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import litellm
import structlog
import yaml

from failure_analyst.core.domain.errors import RateLimitedError, ReasoningServiceError

RATE_LIMIT_ERROR_NAMES = ("RateLimitError", "ThrottlingException", "TooManyRequests")
RATE_LIMIT_MESSAGE_PATTERNS = (
    "throttling",
    "too many requests",
    "rate exceeded",
    "rate limit",
)
ALLOWED_PARAMS = ("temperature", "top_p", "max_tokens", "frequency_penalty", "presence_penalty")


@dataclass
class RetryPolicy:
    """Backoff configuration for rate-limit retries."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 0.2
    timeout: int = 60


def is_rate_limit_error(error: BaseException) -> bool:
    """Whether an exception means the provider is throttling requests."""
    if isinstance(error, litellm.RateLimitError):
        return True
    if any(name in type(error).__name__ for name in RATE_LIMIT_ERROR_NAMES):
        return True
    message = str(error).lower()
    return any(pattern in message for pattern in RATE_LIMIT_MESSAGE_PATTERNS)


def compute_backoff_delay(
    attempt: int,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter: float = 0.2,
    rng: random.Random | None = None,
) -> float:
    """
    Delay before retry number ``attempt`` (0-based).

    The base delay doubles per attempt and is capped at ``max_delay``; a
    uniform jitter of +/- ``jitter`` (fraction of the base) is then applied.
    """
    base = min(initial_delay * (2**attempt), max_delay)
    spread = base * jitter
    offset = (rng or random).uniform(-spread, spread)
    return max(0.0, base + offset)


class LiteLLMReasoningService:
    """
    Reasoning service backed by ``litellm.acompletion``.

    Example:
        >>> service = LiteLLMReasoningService("configs/llm_config.yaml")
        >>> text = await service.submit("Why did the deployment fail?")
    """

    def __init__(
        self,
        config_path: str = "configs/llm_config.yaml",
        model: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        """
        Initialize the service from a YAML config.

        Args:
            config_path: Path to the LLM YAML config
            model: Model alias or model name (defaults to ``default_model``)
            sleep: Awaitable used between retries
            rng: Random source for jitter

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ValueError: If the config is empty or defines no models
        """
        self.logger = structlog.get_logger().bind(component="reasoning_service")
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._load_config(config_path)
        self.model = self._resolve_model(model)
        self._check_api_key()

        self.logger.info(
            "reasoning_service_initialized",
            model=self.model,
            max_retries=self.retry_policy.max_retries,
        )

    def _load_config(self, config_path: str) -> None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"LLM config not found: {config_path}")

        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if config is None:
            raise ValueError(f"Config file is empty or invalid: {config_path}")

        self.default_model = config.get("default_model", "main")
        self.models = config.get("models", {})
        self.model_params = config.get("model_params", {})
        self.default_params = config.get("default_params", {})
        self.provider_config = config.get("providers", {})
        self.logging_config = config.get("logging", {})

        if not self.models:
            raise ValueError("Config must define at least one model in 'models' section")

        retry_config = config.get("retry_policy", {})
        self.retry_policy = RetryPolicy(
            max_retries=retry_config.get("max_retries", 3),
            initial_delay=retry_config.get("initial_delay", 1.0),
            max_delay=retry_config.get("max_delay", 60.0),
            jitter=retry_config.get("jitter", 0.2),
            timeout=retry_config.get("timeout", 60),
        )

    def _resolve_model(self, model_alias: str | None) -> str:
        alias = model_alias or self.default_model
        return self.models.get(alias, alias)

    def _check_api_key(self) -> None:
        openai_config = self.provider_config.get("openai", {})
        api_key_env = openai_config.get("api_key_env", "OPENAI_API_KEY")
        if not os.getenv(api_key_env):
            self.logger.warning(
                "api_key_missing",
                env_var=api_key_env,
                hint="Set environment variable for API access",
            )

    def _get_model_parameters(self) -> dict[str, Any]:
        if self.model in self.model_params:
            params = self.model_params[self.model]
        else:
            params = next(
                (p for key, p in self.model_params.items() if self.model.startswith(key)),
                self.default_params,
            )
        return {k: v for k, v in params.items() if k in ALLOWED_PARAMS}

    async def submit(self, prompt: str) -> str:
        """
        Send a single-message prompt and return the response text.

        Raises:
            RateLimitedError: If rate limiting persists past ``max_retries``
            ReasoningServiceError: On any other failure or an empty response
        """
        messages = [{"role": "user", "content": prompt}]
        params = self._get_model_parameters()
        attempt = 0

        while True:
            start_time = time.time()
            try:
                response = await litellm.acompletion(
                    model=self.model,
                    messages=messages,
                    timeout=self.retry_policy.timeout,
                    **params,
                )
            except Exception as e:
                if not is_rate_limit_error(e):
                    self.logger.error(
                        "completion_failed",
                        model=self.model,
                        error_type=type(e).__name__,
                        error=str(e)[:200],
                    )
                    raise ReasoningServiceError(f"{type(e).__name__}: {e}") from e

                if attempt >= self.retry_policy.max_retries:
                    self.logger.error(
                        "rate_limit_retries_exhausted", model=self.model, attempts=attempt + 1
                    )
                    raise RateLimitedError(
                        f"Rate limited after {attempt + 1} attempts: {e}", attempts=attempt + 1
                    ) from e

                delay = compute_backoff_delay(
                    attempt,
                    self.retry_policy.initial_delay,
                    self.retry_policy.max_delay,
                    self.retry_policy.jitter,
                    self._rng,
                )
                self.logger.warning(
                    "rate_limited_retrying",
                    model=self.model,
                    attempt=attempt + 1,
                    backoff_seconds=round(delay, 2),
                )
                await self._sleep(delay)
                attempt += 1
                continue

            content = response.choices[0].message.content
            if not content:
                raise ReasoningServiceError("Reasoning service returned an empty response")

            if self.logging_config.get("log_token_usage", True):
                usage = getattr(response, "usage", None)
                self.logger.info(
                    "completion_succeeded",
                    model=self.model,
                    tokens=getattr(usage, "total_tokens", None) if usage else None,
                    latency_ms=int((time.time() - start_time) * 1000),
                )
            return content
