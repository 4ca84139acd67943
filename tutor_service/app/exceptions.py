from __future__ import annotations


class QuizoraError(Exception):
    """Base exception for all tutor-service domain errors.

    ``code`` is the machine-readable value surfaced to API callers.
    """

    code = "internal_error"
    # Balance right after a failed tool call, when known.
    remaining_balance: int | None = None

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.code


class AccountNotFoundError(QuizoraError):
    """Unknown account id."""

    code = "account_not_found"

    def __init__(self, account_id: str) -> None:
        super().__init__(f"account not found: {account_id}")
        self.account_id = account_id


class InsufficientCreditsError(QuizoraError):
    """Balance too low for the requested amount."""

    code = "insufficient_credits"

    def __init__(self, required: int, balance: int) -> None:
        self.required = required
        self.balance = balance
        self.shortfall = max(required - balance, 0)
        super().__init__(
            f"insufficient credits: required={required} balance={balance} shortfall={self.shortfall}"
        )


class PersistenceError(QuizoraError):
    """Ledger Store unavailable or a ledger write failed."""

    code = "persistence_unavailable"


class InvalidPayloadError(QuizoraError):
    """Tool payload failed validation."""

    code = "invalid_payload"

    def __init__(self, message: str | None = None, errors: list | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class SubscriptionNotFoundError(QuizoraError):
    """Unknown subscription id."""

    code = "subscription_not_found"


class PlanNotFoundError(QuizoraError):
    """Unknown plan code."""

    code = "plan_not_found"


class PermissionDeniedError(QuizoraError):
    """Caller lacks the administrator role."""

    code = "permission_denied"


# -------- AI adapter taxonomy --------


class AIInvocationError(QuizoraError):
    """Base class for failures reported by the AI Invocation Adapter."""

    retryable = False


class RateLimitedError(AIInvocationError):
    """Provider rate limit hit; retry after backoff."""

    code = "rate_limited"
    retryable = True


class QuotaExceededError(AIInvocationError):
    """Provider quota exhausted; retry later, not immediately."""

    code = "quota_exceeded"
    retryable = True


class TransientAIError(AIInvocationError):
    """Temporary provider failure or timeout."""

    code = "service_busy"
    retryable = True


class FatalAIError(AIInvocationError):
    """Non-retryable provider failure (malformed input, empty output, ...)."""

    code = "generation_failed"


class UsageEventNotFoundError(QuizoraError):
    """Unknown usage event id."""

    code = "usage_event_not_found"


class ConversationNotFoundError(QuizoraError):
    """No committed chat turns for the given session id."""

    code = "conversation_not_found"
