"""도메인 예외 -> HTTP 응답 변환.

모든 라우터는 도메인 예외를 그대로 올리고, 여기서 한 번에 HTTPException 으로 바꾼다.
응답 detail 은 {"code", "message", ...} 형태다.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exception_handlers import http_exception_handler
from starlette.responses import Response

from ..exceptions import (
    AccountNotFoundError,
    AIInvocationError,
    ConversationNotFoundError,
    FatalAIError,
    InsufficientCreditsError,
    InvalidPayloadError,
    PermissionDeniedError,
    PersistenceError,
    PlanNotFoundError,
    QuizoraError,
    QuotaExceededError,
    RateLimitedError,
    SubscriptionNotFoundError,
    TransientAIError,
    UsageEventNotFoundError,
)


logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[QuizoraError], int] = {
    AccountNotFoundError: status.HTTP_404_NOT_FOUND,
    SubscriptionNotFoundError: status.HTTP_404_NOT_FOUND,
    PlanNotFoundError: status.HTTP_404_NOT_FOUND,
    UsageEventNotFoundError: status.HTTP_404_NOT_FOUND,
    ConversationNotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientCreditsError: status.HTTP_402_PAYMENT_REQUIRED,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    InvalidPayloadError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    RateLimitedError: status.HTTP_429_TOO_MANY_REQUESTS,
    QuotaExceededError: status.HTTP_429_TOO_MANY_REQUESTS,
    TransientAIError: status.HTTP_503_SERVICE_UNAVAILABLE,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
    FatalAIError: status.HTTP_502_BAD_GATEWAY,
}

# 사용자에게 보여줄 메시지. 내부 예외 메시지는 로그에만 남긴다.
_USER_MESSAGES: dict[str, str] = {
    "insufficient_credits": "크레딧이 부족합니다.",
    "rate_limited": "AI API 호출이 일시적으로 제한되었습니다. 잠시 후 다시 시도해주세요.",
    "quota_exceeded": "AI 사용 한도를 초과했습니다. 나중에 다시 시도해주세요.",
    "service_busy": "AI 서버가 일시적으로 불안정합니다. 잠시 후 다시 시도해주세요.",
    "generation_failed": "AI 응답 생성에 실패했습니다.",
    "persistence_unavailable": "잠시 후 다시 시도해주세요.",
}


def status_code_for(exc: QuizoraError) -> int:
    for error_type in type(exc).__mro__:
        code = _STATUS_BY_ERROR.get(error_type)  # type: ignore[arg-type]
        if code is not None:
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: QuizoraError) -> HTTPException:
    detail: dict[str, object] = {
        "code": exc.code,
        "message": _USER_MESSAGES.get(exc.code, exc.message),
    }
    if isinstance(exc, InsufficientCreditsError):
        detail.update(
            required=exc.required,
            balance=exc.balance,
            shortfall=exc.shortfall,
        )
    if isinstance(exc, InvalidPayloadError) and exc.errors:
        detail["errors"] = exc.errors
    if isinstance(exc, AIInvocationError):
        detail["retryable"] = exc.retryable
    if exc.remaining_balance is not None:
        detail["remaining_balance"] = exc.remaining_balance
    return HTTPException(status_code=status_code_for(exc), detail=detail)


async def quizora_error_handler(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, QuizoraError)
    http_exc = to_http_exception(exc)
    if http_exc.status_code >= 500:
        logger.error("request failed with %s: %s", exc.code, exc.message)
    return await http_exception_handler(request, http_exc)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QuizoraError, quizora_error_handler)
