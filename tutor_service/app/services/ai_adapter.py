"""AI Invocation Adapter.

프로바이더 호출을 감싸서 (output, measured_cost) 또는 분류된 오류 하나를 돌려준다.
크레딧 원장에는 전혀 관여하지 않는다.

- 일시 오류(TransientAIError)는 지수 백오프로 최대 max_retries 번 다시 시도한다.
- 속도 제한/쿼터 초과는 재시도 없이 바로 올린다.
- 도구별 타임아웃을 넘기면 TransientAIError 로 취급한다. 타임아웃은 워커가 호출을
  시작한 시점부터 잰다.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from common.llm.factory import ChatModelConfig, create_chat_model
from common.llm.utils import normalize_model_name

from ..config import AIConfig
from ..exceptions import (
    AIInvocationError,
    FatalAIError,
    QuotaExceededError,
    RateLimitedError,
    TransientAIError,
)
from ..models.conversation import ChatRole
from ..models.tools import InlineMedia
from ..models.usage import OperationKind
from .pricing import PricingService


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0
# 워커가 호출을 집어 들었는지 확인하는 주기(초)
PICKUP_POLL_SECONDS = 0.05


@dataclass(slots=True)
class HistoryTurn:
    role: ChatRole
    content: str


@dataclass(slots=True)
class AIRequest:
    kind: OperationKind
    system_prompt: str
    user_prompt: str
    declared_cost: int
    history: list[HistoryTurn] = field(default_factory=list)
    media: InlineMedia | None = None


@dataclass(slots=True)
class AIResult:
    output: str
    measured_cost: int
    model: str
    attempts: int = 1


# -------- error classification --------


_QUOTA_MARKERS = (
    "exceeded your current quota",
    "insufficient_quota",
    "quota exceeded",
    "billing",
    "per day",
)
_RATE_LIMIT_MARKERS = (
    "rate limit",
    "ratelimit",
    "too many requests",
    "resource exhausted",
    "resource_exhausted",
    "quota",
)
_TRANSIENT_MARKERS = (
    "service unavailable",
    "temporarily unavailable",
    "unavailable",
    "overloaded",
    "gateway",
    "timeout",
    "timed out",
    "deadline",
    "connection",
)


def _status_code_of(exc: Exception) -> int | None:
    for candidate in (
        getattr(exc, "status_code", None),
        getattr(exc, "code", None),
        getattr(getattr(exc, "response", None), "status_code", None),
    ):
        if isinstance(candidate, int):
            return candidate
    return None


def classify_provider_error(exc: Exception) -> AIInvocationError:
    """프로바이더 예외를 RateLimited / QuotaExceeded / Transient / Fatal 중 하나로 바꾼다."""

    if isinstance(exc, AIInvocationError):
        return exc

    status_code = _status_code_of(exc)
    code = getattr(exc, "code", None)
    message = str(exc).lower()
    if isinstance(code, str):
        message = f"{code.lower()} {message}"

    if status_code == 402 or any(marker in message for marker in _QUOTA_MARKERS):
        return QuotaExceededError("AI provider quota exhausted")

    if status_code == 429 or any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return RateLimitedError("AI provider rate limit reached")

    if isinstance(exc, (TimeoutError, ConnectionError)):
        return TransientAIError("AI provider temporarily unavailable")

    if status_code is not None and (status_code >= 500 or status_code == 408):
        return TransientAIError("AI provider temporarily unavailable")

    if any(marker in message for marker in _TRANSIENT_MARKERS):
        return TransientAIError("AI provider temporarily unavailable")

    return FatalAIError(f"AI generation failed: {exc.__class__.__name__}")


def response_text(content: Any) -> str:
    """AIMessage.content 를 문자열로 합친다 (문자열 또는 파트 리스트)."""

    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return str(content or "")


# -------- adapter --------


class AIAdapter:
    """langchain 채팅 모델 기반 AI 호출 어댑터."""

    def __init__(
        self,
        chat_model: BaseChatModel,
        model_name: str,
        config: AIConfig,
        pricing: PricingService,
        *,
        sleep: Callable[[float], None] = time.sleep,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._chat_model = chat_model
        self._model_name = normalize_model_name(model_name)
        self._config = config
        self._pricing = pricing
        self._sleep = sleep
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.max_concurrent_calls,
            thread_name_prefix="ai-call",
        )

    @property
    def model_name(self) -> str:
        return self._model_name

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def backoff_delay(self, attempt: int) -> float:
        """attempt 번째 실패 후 대기 시간 (1, 2, 4, ... 최대 cap)."""
        delay = self._config.backoff_base_seconds * (
            self._config.backoff_factor ** max(attempt - 1, 0)
        )
        return min(delay, self._config.backoff_cap_seconds)

    def invoke(self, request: AIRequest) -> AIResult:
        messages = self._build_messages(request)
        timeout = self._config.timeouts.get(request.kind, DEFAULT_TIMEOUT_SECONDS)

        attempt = 0
        while True:
            attempt += 1
            try:
                output = self._call(messages, timeout)
            except TransientAIError as exc:
                if attempt > self._config.max_retries:
                    logger.error(
                        "AI call failed after %d attempts: %s",
                        attempt,
                        exc,
                        extra={"kind": request.kind.value},
                    )
                    raise
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "transient AI failure, retrying in %.1fs (attempt=%d): %s",
                    delay,
                    attempt,
                    exc,
                    extra={"kind": request.kind.value},
                )
                self._sleep(delay)
                continue

            if not output.strip():
                raise FatalAIError("AI provider returned an empty response")

            measured = self._pricing.measured_cost(
                request.kind, request.declared_cost, output
            )
            return AIResult(
                output=output,
                measured_cost=measured,
                model=self._model_name,
                attempts=attempt,
            )

    def _call(self, messages: list[BaseMessage], timeout: float) -> str:
        """프로바이더를 한 번 호출한다.

        타임아웃은 워커가 호출을 시작한 시점부터 잰다. 풀이 가득 차서 기다린 시간은
        포함하지 않는다.
        """
        started = threading.Event()

        def _invoke() -> Any:
            started.set()
            return self._chat_model.invoke(messages)

        future = self._executor.submit(_invoke)
        while not started.wait(PICKUP_POLL_SECONDS):
            if future.done():
                break

        try:
            response = future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise TransientAIError(f"AI provider call timed out after {timeout:g}s") from exc
        except Exception as exc:  # noqa: BLE001
            error = classify_provider_error(exc)
            if error is exc:
                raise
            raise error from exc
        return response_text(getattr(response, "content", response))

    @staticmethod
    def _build_messages(request: AIRequest) -> list[BaseMessage]:
        messages: list[BaseMessage] = [SystemMessage(content=request.system_prompt)]
        for turn in request.history:
            if turn.role is ChatRole.USER:
                messages.append(HumanMessage(content=turn.content))
            else:
                messages.append(AIMessage(content=turn.content))

        media = request.media
        if media is None:
            messages.append(HumanMessage(content=request.user_prompt))
            return messages

        if media.mime_type.startswith("image/"):
            media_part: dict[str, Any] = {
                "type": "image_url",
                "image_url": {"url": media.as_data_url()},
            }
        else:
            media_part = {
                "type": "media",
                "mime_type": media.mime_type,
                "data": media.data,
            }
        messages.append(
            HumanMessage(
                content=[{"type": "text", "text": request.user_prompt}, media_part]
            )
        )
        return messages


def build_ai_adapter(
    llm_config: ChatModelConfig,
    ai_config: AIConfig,
    pricing: PricingService,
) -> AIAdapter:
    if llm_config.request_timeout is None:
        longest = max(ai_config.timeouts.values(), default=DEFAULT_TIMEOUT_SECONDS)
        llm_config = replace(llm_config, request_timeout=longest + 5.0)
    chat_model = create_chat_model(llm_config)
    return AIAdapter(chat_model, llm_config.model, ai_config, pricing)
