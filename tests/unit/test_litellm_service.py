"""
Unit tests for LiteLLMReasoningService

litellm.acompletion is patched; no network calls are made.
"""

import random
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
import yaml

from failure_analyst.core.domain.errors import RateLimitedError, ReasoningServiceError
from failure_analyst.infrastructure.llm.litellm_service import (
    LiteLLMReasoningService,
    compute_backoff_delay,
    is_rate_limit_error,
)


class RateLimitError(Exception):
    """Provider-style throttling error recognized by its class name."""


def make_response(content, total_tokens=42):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


@pytest.fixture
def config_path(tmp_path):
    config = {
        "default_model": "main",
        "models": {"main": "gpt-4.1", "fast": "gpt-4.1-mini"},
        "model_params": {"gpt-4.1": {"temperature": 0.1, "max_tokens": 500, "seed": 7}},
        "default_params": {"temperature": 0.3},
        "retry_policy": {"max_retries": 2, "initial_delay": 1.0, "max_delay": 60.0, "jitter": 0.2},
        "providers": {"openai": {"api_key_env": "OPENAI_API_KEY"}},
    }
    path = tmp_path / "llm_config.yaml"
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return str(path)


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def service(config_path, sleep):
    return LiteLLMReasoningService(config_path, sleep=sleep, rng=random.Random(0))


class TestConfig:
    def test_resolves_default_alias(self, service):
        assert service.model == "gpt-4.1"

    def test_resolves_explicit_alias(self, config_path):
        service = LiteLLMReasoningService(config_path, model="fast")

        assert service.model == "gpt-4.1-mini"

    def test_unknown_alias_used_as_model_name(self, config_path):
        service = LiteLLMReasoningService(config_path, model="azure/gpt-4o")

        assert service.model == "azure/gpt-4o"

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LiteLLMReasoningService(str(tmp_path / "missing.yaml"))

    def test_config_without_models(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("default_model: main\n", encoding="utf-8")

        with pytest.raises(ValueError, match="at least one model"):
            LiteLLMReasoningService(str(path))

    def test_retry_policy_loaded(self, service):
        assert service.retry_policy.max_retries == 2
        assert service.retry_policy.timeout == 60


class TestRateLimitDetection:
    def test_class_name(self):
        assert is_rate_limit_error(RateLimitError("slow down"))

    def test_message_pattern(self):
        assert is_rate_limit_error(RuntimeError("Too Many Requests from upstream"))
        assert is_rate_limit_error(RuntimeError("ThrottlingException: Rate exceeded"))

    def test_other_errors(self):
        assert not is_rate_limit_error(ValueError("invalid api key"))
        assert not is_rate_limit_error(TimeoutError("read timed out"))


class TestBackoff:
    def test_doubles_within_jitter(self):
        rng = random.Random(1)
        for attempt, base in [(0, 1.0), (1, 2.0), (2, 4.0), (3, 8.0)]:
            delay = compute_backoff_delay(attempt, 1.0, 60.0, 0.2, rng)
            assert base * 0.8 <= delay <= base * 1.2

    def test_capped_at_max_delay(self):
        delay = compute_backoff_delay(10, 1.0, 60.0, 0.2, random.Random(2))

        assert 48.0 <= delay <= 72.0

    def test_no_jitter(self):
        assert compute_backoff_delay(2, 1.0, 60.0, 0.0) == 4.0


class TestSubmit:
    @pytest.mark.asyncio
    async def test_returns_content(self, service):
        with patch("litellm.acompletion", new=AsyncMock(return_value=make_response("ok"))) as call:
            result = await service.submit("Why?")

        assert result == "ok"
        kwargs = call.call_args.kwargs
        assert kwargs["model"] == "gpt-4.1"
        assert kwargs["messages"] == [{"role": "user", "content": "Why?"}]
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 500
        assert "seed" not in kwargs

    @pytest.mark.asyncio
    async def test_retries_rate_limits_then_succeeds(self, service, sleep):
        responses = [RateLimitError("429"), RateLimitError("429"), make_response("done")]
        with patch("litellm.acompletion", new=AsyncMock(side_effect=responses)) as call:
            result = await service.submit("Why?")

        assert result == "done"
        assert call.await_count == 3
        assert sleep.await_count == 2
        first_delay = sleep.await_args_list[0].args[0]
        second_delay = sleep.await_args_list[1].args[0]
        assert 0.8 <= first_delay <= 1.2
        assert 1.6 <= second_delay <= 2.4

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_rate_limited(self, service, sleep):
        with patch("litellm.acompletion", new=AsyncMock(side_effect=RateLimitError("429"))) as call:
            with pytest.raises(RateLimitedError) as exc_info:
                await service.submit("Why?")

        assert call.await_count == 3
        assert sleep.await_count == 2
        assert exc_info.value.attempts == 3

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, service, sleep):
        with patch("litellm.acompletion", new=AsyncMock(side_effect=ValueError("bad key"))) as call:
            with pytest.raises(ReasoningServiceError, match="bad key"):
                await service.submit("Why?")

        assert call.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_response(self, service):
        with patch("litellm.acompletion", new=AsyncMock(return_value=make_response(""))):
            with pytest.raises(ReasoningServiceError, match="empty"):
                await service.submit("Why?")

    @pytest.mark.asyncio
    async def test_rate_limited_is_a_reasoning_service_error(self, service):
        with patch("litellm.acompletion", new=AsyncMock(side_effect=RateLimitError("429"))):
            with pytest.raises(ReasoningServiceError):
                await service.submit("Why?")
