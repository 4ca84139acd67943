from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from langchain_core.messages import AIMessage

from tutor_service.app.config import AIConfig, PricingConfig
from tutor_service.app.exceptions import (
    FatalAIError,
    QuotaExceededError,
    RateLimitedError,
    TransientAIError,
)
from tutor_service.app.models.usage import OperationKind
from tutor_service.app.services.ai_adapter import (
    AIAdapter,
    AIRequest,
    classify_provider_error,
    response_text,
)
from tutor_service.app.services.pricing import PricingService
from tutor_service.tests.fakes import ScriptedChatModel


class ProviderError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _adapter(
    model: ScriptedChatModel,
    sleeps: list[float],
    config: AIConfig | None = None,
) -> AIAdapter:
    return AIAdapter(
        model,  # type: ignore[arg-type]
        "openai/gpt-4o-mini",
        config or AIConfig(),
        PricingService(PricingConfig()),
        sleep=sleeps.append,
    )


def _request(kind: OperationKind = OperationKind.TEXT_QUESTION, declared_cost: int = 5) -> AIRequest:
    return AIRequest(
        kind=kind,
        system_prompt="You are a tutor.",
        user_prompt="What is 2 + 2?",
        declared_cost=declared_cost,
    )


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ProviderError("Too Many Requests", status_code=429), RateLimitedError),
        (ProviderError("RESOURCE_EXHAUSTED: try again later"), RateLimitedError),
        (ProviderError("You exceeded your current quota", status_code=429), QuotaExceededError),
        (ProviderError("payment required", status_code=402), QuotaExceededError),
        (ProviderError("upstream error", status_code=503), TransientAIError),
        (ProviderError("request timeout", status_code=408), TransientAIError),
        (TimeoutError("read timed out"), TransientAIError),
        (ConnectionError("reset by peer"), TransientAIError),
        (ProviderError("model is overloaded"), TransientAIError),
        (ProviderError("invalid argument", status_code=400), FatalAIError),
        (ValueError("bad input"), FatalAIError),
    ],
)
def test_classify_provider_error(error: Exception, expected: type[Exception]) -> None:
    assert isinstance(classify_provider_error(error), expected)


def test_classify_keeps_already_classified_errors() -> None:
    error = RateLimitedError("limited")
    assert classify_provider_error(error) is error


def test_response_text_joins_text_parts() -> None:
    assert response_text("plain") == "plain"
    assert response_text([{"type": "text", "text": "a"}, "b", {"type": "image_url"}]) == "ab"
    assert response_text(None) == ""


def test_invoke_returns_output_and_normalized_model_name() -> None:
    sleeps: list[float] = []
    adapter = _adapter(ScriptedChatModel("4"), sleeps)

    result = adapter.invoke(_request())

    assert result.output == "4"
    assert result.measured_cost == 5
    assert result.model == "gpt-4o-mini"
    assert result.attempts == 1
    adapter.close()


def test_invoke_accepts_list_content() -> None:
    model = ScriptedChatModel(AIMessage(content=[{"type": "text", "text": "four"}]))
    adapter = _adapter(model, [])

    assert adapter.invoke(_request()).output == "four"
    adapter.close()


def test_transient_errors_are_retried_with_backoff_then_raised() -> None:
    sleeps: list[float] = []
    model = ScriptedChatModel(ProviderError("service unavailable", status_code=503))
    adapter = _adapter(model, sleeps)

    with pytest.raises(TransientAIError):
        adapter.invoke(_request())

    assert len(model.calls) == 3
    assert sleeps == [1.0, 2.0]
    adapter.close()


@pytest.mark.parametrize(
    "error",
    [
        ProviderError("Too Many Requests", status_code=429),
        ProviderError("insufficient_quota", status_code=429),
        ProviderError("invalid argument", status_code=400),
    ],
)
def test_non_transient_errors_are_not_retried(error: Exception) -> None:
    sleeps: list[float] = []
    model = ScriptedChatModel(error)
    adapter = _adapter(model, sleeps)

    with pytest.raises((RateLimitedError, QuotaExceededError, FatalAIError)):
        adapter.invoke(_request())

    assert len(model.calls) == 1
    assert sleeps == []
    adapter.close()


def test_empty_output_is_fatal() -> None:
    adapter = _adapter(ScriptedChatModel("   "), [])

    with pytest.raises(FatalAIError):
        adapter.invoke(_request())
    adapter.close()


def test_timeout_is_treated_as_transient() -> None:
    config = AIConfig(timeouts={OperationKind.TEXT_QUESTION: 0.05}, max_retries=0)
    model = ScriptedChatModel("late answer", delay=0.5)
    adapter = _adapter(model, [], config)

    with pytest.raises(TransientAIError):
        adapter.invoke(_request())
    adapter.close()


def test_timeout_does_not_count_time_waiting_for_a_worker() -> None:
    config = AIConfig(timeouts={OperationKind.TEXT_QUESTION: 0.2}, max_retries=0)
    executor = ThreadPoolExecutor(max_workers=1)
    gate = threading.Event()
    executor.submit(gate.wait, 5.0)
    release = threading.Timer(0.5, gate.set)
    release.start()
    adapter = AIAdapter(
        ScriptedChatModel("4"),  # type: ignore[arg-type]
        "openai/gpt-4o-mini",
        config,
        PricingService(PricingConfig()),
        sleep=[].append,
        executor=executor,
    )

    try:
        result = adapter.invoke(_request())
    finally:
        release.cancel()
        gate.set()
        executor.shutdown(wait=True)

    assert result.output == "4"
    assert result.attempts == 1


def test_pool_size_follows_config() -> None:
    adapter = _adapter(ScriptedChatModel("ok"), [], AIConfig(max_concurrent_calls=3))

    assert adapter._executor._max_workers == 3
    adapter.close()


def test_backoff_delay_is_capped() -> None:
    config = AIConfig(backoff_base_seconds=1.0, backoff_factor=2.0, backoff_cap_seconds=5.0)
    adapter = _adapter(ScriptedChatModel("ok"), [], config)

    assert [adapter.backoff_delay(n) for n in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 5.0, 5.0]
    adapter.close()


def test_chat_turn_measured_cost_follows_answer_length() -> None:
    adapter = _adapter(ScriptedChatModel("b" * 301), [])

    result = adapter.invoke(_request(OperationKind.CHAT_TURN, declared_cost=1))

    assert result.measured_cost == 3
    adapter.close()
