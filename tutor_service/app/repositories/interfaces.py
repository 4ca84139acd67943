from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..models.account import Account, AccountRole
from ..models.conversation import ThreadSummary, UsageStats
from ..models.credit import CreditTransactionType
from ..models.subscription import Subscription
from ..models.usage import OperationKind, Settlement, UsageEvent, UsageStatus


class AccountRepositoryInterface(Protocol):
    """계정 조회/관리 계약. 잔액은 이 레포지토리로 바꾸지 않는다."""

    def find_by_account_id(
        self, account_id: str
    ) -> Account | None:  # pragma: no cover - Protocol
        ...

    def list(
        self, page: int, page_size: int
    ) -> tuple[list[Account], int]:  # pragma: no cover - Protocol
        ...

    def set_role(
        self, account_id: str, role: AccountRole
    ) -> Account | None:  # pragma: no cover - Protocol
        ...

    def delete_by_account_id(
        self, account_id: str
    ) -> bool:  # pragma: no cover - Protocol
        ...


class LedgerRepositoryInterface(Protocol):
    """잔액을 바꾸는 유일한 경로.

    모든 메서드는 잔액 변경과 관련 레코드(사용 이벤트, 트랜잭션 로그, 구독) 변경을
    하나의 원자적 단위로 처리해야 한다. 저장소 장애는 PersistenceError 로 올린다.
    """

    def open_account(
        self,
        account_id: str,
        email: str | None,
        initial_balance: int,
    ) -> tuple[Account, bool]:  # pragma: no cover - Protocol
        """계정이 없으면 만들고 (계정, 생성 여부) 를 반환한다."""
        ...

    def deduct(
        self, event: UsageEvent
    ) -> tuple[UsageEvent, int] | None:  # pragma: no cover - Protocol
        """잔액이 declared_cost 이상일 때만 차감하고 pending 이벤트를 저장한다.

        조건을 만족하지 못하면(계정 없음 포함) 아무것도 쓰지 않고 None.
        """
        ...

    def commit(
        self,
        event_id: str,
        output: str,
        model: str | None,
        measured_cost: int,
    ) -> Settlement | None:  # pragma: no cover - Protocol
        ...

    def release(
        self,
        event_id: str,
        status: UsageStatus,
        error_code: str | None,
    ) -> Settlement | None:  # pragma: no cover - Protocol
        ...

    def grant(
        self,
        account_id: str,
        amount: int,
        tx_type: CreditTransactionType,
        reason: str,
        metadata: dict | None = None,
    ) -> int | None:  # pragma: no cover - Protocol
        ...

    def debit(
        self,
        account_id: str,
        amount: int,
        tx_type: CreditTransactionType,
        reason: str,
        metadata: dict | None = None,
    ) -> int | None:  # pragma: no cover - Protocol
        ...

    def activate_subscription(
        self, subscription: Subscription
    ) -> tuple[Subscription, int] | None:  # pragma: no cover - Protocol
        ...

    def cancel_subscription(
        self, subscription_id: str
    ) -> tuple[Subscription, int] | None:  # pragma: no cover - Protocol
        ...


class UsageEventRepositoryInterface(Protocol):
    """사용 이벤트 읽기 전용 계약 (History Projection, 스위퍼)."""

    def find_by_id(
        self, event_id: str
    ) -> UsageEvent | None:  # pragma: no cover - Protocol
        ...

    def list_by_account(
        self,
        account_id: str,
        page: int,
        page_size: int,
        kind: OperationKind | None = None,
        status: UsageStatus | None = None,
        session_id: str | None = None,
    ) -> tuple[list[UsageEvent], int]:  # pragma: no cover - Protocol
        ...

    def list_all(
        self,
        page: int,
        page_size: int,
        kind: OperationKind | None = None,
        status: UsageStatus | None = None,
    ) -> tuple[list[UsageEvent], int]:  # pragma: no cover - Protocol
        ...

    def list_threads(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[ThreadSummary], int]:  # pragma: no cover - Protocol
        ...

    def thread_summary(
        self, account_id: str, session_id: str
    ) -> ThreadSummary | None:  # pragma: no cover - Protocol
        ...

    def list_thread_turns(
        self, account_id: str, session_id: str, page: int, page_size: int
    ) -> tuple[list[UsageEvent], int]:  # pragma: no cover - Protocol
        ...

    def recent_turns(
        self, account_id: str, session_id: str, limit: int
    ) -> list[UsageEvent]:  # pragma: no cover - Protocol
        ...

    def stats(self, account_id: str) -> UsageStats:  # pragma: no cover - Protocol
        ...

    def find_stale_pending(
        self, created_before: datetime, limit: int
    ) -> list[UsageEvent]:  # pragma: no cover - Protocol
        ...

    def delete_by_account(
        self, account_id: str
    ) -> int:  # pragma: no cover - Protocol
        ...


class SubscriptionRepositoryInterface(Protocol):
    def find_by_id(
        self, subscription_id: str
    ) -> Subscription | None:  # pragma: no cover - Protocol
        ...

    def find_active(
        self, account_id: str
    ) -> Subscription | None:  # pragma: no cover - Protocol
        ...

    def list_by_account(
        self, account_id: str
    ) -> list[Subscription]:  # pragma: no cover - Protocol
        ...

    def expire_due(
        self, now: datetime
    ) -> list[Subscription]:  # pragma: no cover - Protocol
        ...

    def delete_by_account(
        self, account_id: str
    ) -> int:  # pragma: no cover - Protocol
        ...
