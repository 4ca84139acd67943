"""테스트용 in-memory 레포지토리와 가짜 채팅 모델.

레포지토리 Protocol 을 그대로 구현하며, 하나의 락으로 원장 연산을 직렬화해서
Mongo 트랜잭션과 같은 원자성을 흉내 낸다. 실제 스레드로 동시성 테스트를 돌릴 수 있다.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from langchain_core.messages import AIMessage, BaseMessage

from common.types.datetime import utc_now
from tutor_service.app.config import AppConfig
from tutor_service.app.exceptions import PersistenceError
from tutor_service.app.models.account import Account, AccountRole
from tutor_service.app.models.conversation import (
    KindStats,
    ThreadSummary,
    UsageStats,
    make_thread_title,
)
from tutor_service.app.models.credit import CreditTransaction, CreditTransactionType
from tutor_service.app.models.subscription import Subscription, SubscriptionStatus
from tutor_service.app.models.usage import (
    OperationKind,
    Settlement,
    UsageEvent,
    UsageStatus,
    resolve_commit_charge,
)
from tutor_service.app.services.ai_adapter import AIAdapter
from tutor_service.app.services.container import ServiceContainer, build_container
from tutor_service.app.services.pricing import PricingService


def _new_id() -> str:
    return uuid.uuid4().hex[:24]


@dataclass
class InMemoryStore:
    accounts: dict[str, Account] = field(default_factory=dict)
    events: dict[str, UsageEvent] = field(default_factory=dict)
    subscriptions: dict[str, Subscription] = field(default_factory=dict)
    transactions: list[CreditTransaction] = field(default_factory=list)
    lock: threading.RLock = field(default_factory=threading.RLock)
    # 다음 호출에서 PersistenceError 를 낼 연산 이름
    failures: set[str] = field(default_factory=set)

    def check(self, action: str) -> None:
        if action in self.failures:
            self.failures.discard(action)
            raise PersistenceError(f"ledger store unavailable during {action}")

    def add_account(
        self,
        account_id: str,
        balance: int = 0,
        role: AccountRole = AccountRole.USER,
    ) -> Account:
        now = utc_now()
        account = Account(
            id=_new_id(),
            account_id=account_id,
            balance=balance,
            role=role,
            created_at=now,
            updated_at=now,
        )
        with self.lock:
            self.accounts[account_id] = account
        return account

    def balance(self, account_id: str) -> int:
        with self.lock:
            return self.accounts[account_id].balance

    def committed_total(self, account_id: str) -> int:
        with self.lock:
            return sum(
                event.actual_cost or 0
                for event in self.events.values()
                if event.account_id == account_id and event.status is UsageStatus.COMMITTED
            )


class FakeAccountRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def find_by_account_id(self, account_id: str) -> Account | None:
        with self._store.lock:
            self._store.check("find_account")
            account = self._store.accounts.get(account_id)
            return account.model_copy() if account else None

    def list(self, page: int, page_size: int) -> tuple[list[Account], int]:
        with self._store.lock:
            items = sorted(
                self._store.accounts.values(), key=lambda a: a.created_at, reverse=True
            )
            start = (page - 1) * page_size
            return [a.model_copy() for a in items[start : start + page_size]], len(items)

    def set_role(self, account_id: str, role: AccountRole) -> Account | None:
        with self._store.lock:
            account = self._store.accounts.get(account_id)
            if account is None:
                return None
            account.role = role
            return account.model_copy()

    def delete_by_account_id(self, account_id: str) -> bool:
        with self._store.lock:
            self._store.transactions = [
                tx for tx in self._store.transactions if tx.account_id != account_id
            ]
            return self._store.accounts.pop(account_id, None) is not None


class FakeLedgerRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def _log(
        self,
        account_id: str,
        tx_type: CreditTransactionType,
        amount: int,
        balance_after: int,
        reason: str,
        metadata: dict | None = None,
    ) -> None:
        now = utc_now()
        self._store.transactions.append(
            CreditTransaction(
                id=_new_id(),
                account_id=account_id,
                type=tx_type,
                amount=amount,
                balance_after=balance_after,
                reason=reason,
                metadata=metadata,
                created_at=now,
                updated_at=now,
            )
        )

    def open_account(
        self, account_id: str, email: str | None, initial_balance: int
    ) -> tuple[Account, bool]:
        with self._store.lock:
            self._store.check("open_account")
            existing = self._store.accounts.get(account_id)
            if existing:
                return existing.model_copy(), False
            account = self._store.add_account(account_id, initial_balance)
            account.email = email
            if initial_balance > 0:
                self._log(
                    account_id,
                    CreditTransactionType.SIGNUP,
                    initial_balance,
                    initial_balance,
                    "signup bonus",
                )
            return account.model_copy(), True

    def deduct(self, event: UsageEvent) -> tuple[UsageEvent, int] | None:
        with self._store.lock:
            self._store.check("deduct")
            account = self._store.accounts.get(event.account_id)
            if account is None or account.balance < event.declared_cost:
                return None
            account.balance -= event.declared_cost
            stored = event.model_copy(update={"id": _new_id()})
            self._store.events[stored.id] = stored
            return stored.model_copy(), account.balance

    def commit(
        self, event_id: str, output: str, model: str | None, measured_cost: int
    ) -> Settlement | None:
        with self._store.lock:
            self._store.check("commit")
            event = self._store.events.get(event_id)
            if event is None:
                return None
            account = self._store.accounts.get(event.account_id)
            balance = account.balance if account else 0
            if event.status is not UsageStatus.PENDING:
                return Settlement(event=event.model_copy(), balance=balance, changed=False)

            actual_cost, delta = resolve_commit_charge(
                event.declared_cost, measured_cost, balance
            )
            now = utc_now()
            event.status = UsageStatus.COMMITTED
            event.output = output
            event.model = model
            event.actual_cost = actual_cost
            event.measured_cost = measured_cost
            event.resolved_at = now
            event.updated_at = now
            if account is not None:
                account.balance += delta
                account.lifetime_consumed += actual_cost
                balance = account.balance

            if actual_cost > 0:
                for subscription in self._store.subscriptions.values():
                    if (
                        subscription.account_id == event.account_id
                        and subscription.status is SubscriptionStatus.ACTIVE
                        and subscription.remaining_credits > 0
                    ):
                        subscription.remaining_credits -= min(
                            subscription.remaining_credits, actual_cost
                        )
                        break

            return Settlement(event=event.model_copy(), balance=balance, changed=True)

    def release(
        self, event_id: str, status: UsageStatus, error_code: str | None
    ) -> Settlement | None:
        with self._store.lock:
            self._store.check("release")
            event = self._store.events.get(event_id)
            if event is None:
                return None
            account = self._store.accounts.get(event.account_id)
            if event.status is not UsageStatus.PENDING:
                balance = account.balance if account else 0
                return Settlement(event=event.model_copy(), balance=balance, changed=False)

            now = utc_now()
            event.status = status
            event.actual_cost = 0
            event.error_code = error_code
            event.resolved_at = now
            event.updated_at = now
            balance = 0
            if account is not None:
                account.balance += event.declared_cost
                balance = account.balance
            return Settlement(event=event.model_copy(), balance=balance, changed=True)

    def grant(
        self,
        account_id: str,
        amount: int,
        tx_type: CreditTransactionType,
        reason: str,
        metadata: dict | None = None,
    ) -> int | None:
        with self._store.lock:
            self._store.check("grant")
            account = self._store.accounts.get(account_id)
            if account is None:
                return None
            account.balance += amount
            self._log(account_id, tx_type, amount, account.balance, reason, metadata)
            return account.balance

    def debit(
        self,
        account_id: str,
        amount: int,
        tx_type: CreditTransactionType,
        reason: str,
        metadata: dict | None = None,
    ) -> int | None:
        with self._store.lock:
            self._store.check("debit")
            account = self._store.accounts.get(account_id)
            if account is None or account.balance < amount:
                return None
            account.balance -= amount
            self._log(account_id, tx_type, -amount, account.balance, reason, metadata)
            return account.balance

    def activate_subscription(
        self, subscription: Subscription
    ) -> tuple[Subscription, int] | None:
        with self._store.lock:
            self._store.check("activate_subscription")
            account = self._store.accounts.get(subscription.account_id)
            if account is None:
                return None
            for existing in self._store.subscriptions.values():
                if (
                    existing.account_id == subscription.account_id
                    and existing.status is SubscriptionStatus.ACTIVE
                ):
                    existing.status = SubscriptionStatus.EXPIRED
            stored = subscription.model_copy(update={"id": _new_id()})
            self._store.subscriptions[stored.id] = stored
            account.balance += stored.credits_granted
            self._log(
                account.account_id,
                CreditTransactionType.SUBSCRIPTION_GRANT,
                stored.credits_granted,
                account.balance,
                f"{stored.plan_label} subscription",
            )
            return stored.model_copy(), account.balance

    def cancel_subscription(self, subscription_id: str) -> tuple[Subscription, int] | None:
        with self._store.lock:
            self._store.check("cancel_subscription")
            subscription = self._store.subscriptions.get(subscription_id)
            if subscription is None:
                return None
            account = self._store.accounts.get(subscription.account_id)
            balance = account.balance if account else 0
            if subscription.status is not SubscriptionStatus.ACTIVE:
                return subscription.model_copy(), balance

            reclaim = min(subscription.remaining_credits, balance)
            if reclaim > 0 and account is not None:
                account.balance -= reclaim
                balance = account.balance
                self._log(
                    account.account_id,
                    CreditTransactionType.RECLAIM,
                    -reclaim,
                    balance,
                    f"{subscription.plan_label} subscription cancelled",
                )
            now = utc_now()
            subscription.status = SubscriptionStatus.CANCELLED
            subscription.reclaimed_credits = reclaim
            subscription.remaining_credits = 0
            subscription.cancelled_at = now
            subscription.updated_at = now
            return subscription.model_copy(), balance


class FakeUsageEventRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def _select(self, **filters: object) -> list[UsageEvent]:
        with self._store.lock:
            return [
                event.model_copy()
                for event in self._store.events.values()
                if all(
                    value is None or getattr(event, name) == value
                    for name, value in filters.items()
                )
            ]

    @staticmethod
    def _newest_first(items: list[UsageEvent]) -> list[UsageEvent]:
        return sorted(items, key=lambda e: e.created_at, reverse=True)

    def find_by_id(self, event_id: str) -> UsageEvent | None:
        with self._store.lock:
            event = self._store.events.get(event_id)
            return event.model_copy() if event else None

    def list_by_account(
        self,
        account_id: str,
        page: int,
        page_size: int,
        kind: OperationKind | None = None,
        status: UsageStatus | None = None,
        session_id: str | None = None,
    ) -> tuple[list[UsageEvent], int]:
        items = self._newest_first(self._select(
            account_id=account_id, kind=kind, status=status, session_id=session_id
        ))
        start = (page - 1) * page_size
        return items[start : start + page_size], len(items)

    def list_all(
        self,
        page: int,
        page_size: int,
        kind: OperationKind | None = None,
        status: UsageStatus | None = None,
    ) -> tuple[list[UsageEvent], int]:
        items = self._newest_first(self._select(kind=kind, status=status))
        start = (page - 1) * page_size
        return items[start : start + page_size], len(items)

    def _chat_turns(self, account_id: str, session_id: str | None = None) -> list[UsageEvent]:
        items = self._select(
            account_id=account_id,
            kind=OperationKind.CHAT_TURN,
            status=UsageStatus.COMMITTED,
            session_id=session_id,
        )
        items = [event for event in items if event.session_id]
        return sorted(items, key=lambda e: e.created_at)

    @staticmethod
    def _summary(session_id: str, turns: list[UsageEvent]) -> ThreadSummary:
        return ThreadSummary(
            session_id=session_id,
            title=make_thread_title(turns[0].input_text),
            turn_count=len(turns),
            total_credits=sum(turn.actual_cost or 0 for turn in turns),
            started_at=turns[0].created_at,
            last_activity_at=turns[-1].created_at,
        )

    def list_threads(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[ThreadSummary], int]:
        grouped: dict[str, list[UsageEvent]] = {}
        for event in self._chat_turns(account_id):
            grouped.setdefault(event.session_id or "", []).append(event)
        summaries = sorted(
            (self._summary(sid, turns) for sid, turns in grouped.items()),
            key=lambda s: s.last_activity_at,
            reverse=True,
        )
        start = (page - 1) * page_size
        return summaries[start : start + page_size], len(summaries)

    def thread_summary(self, account_id: str, session_id: str) -> ThreadSummary | None:
        turns = self._chat_turns(account_id, session_id)
        if not turns:
            return None
        return self._summary(session_id, turns)

    def list_thread_turns(
        self, account_id: str, session_id: str, page: int, page_size: int
    ) -> tuple[list[UsageEvent], int]:
        turns = self._chat_turns(account_id, session_id)
        start = (page - 1) * page_size
        return turns[start : start + page_size], len(turns)

    def recent_turns(self, account_id: str, session_id: str, limit: int) -> list[UsageEvent]:
        if limit <= 0:
            return []
        return self._chat_turns(account_id, session_id)[-limit:]

    def stats(self, account_id: str) -> UsageStats:
        stats = UsageStats(account_id=account_id)
        for event in self._select(account_id=account_id, status=UsageStatus.COMMITTED):
            kind_stats = stats.by_kind.setdefault(event.kind.value, KindStats())
            kind_stats.requests += 1
            kind_stats.credits += event.actual_cost or 0
            stats.total_requests += 1
            stats.total_credits += event.actual_cost or 0
        return stats

    def find_stale_pending(self, created_before: datetime, limit: int) -> list[UsageEvent]:
        items = [
            event
            for event in self._select(status=UsageStatus.PENDING)
            if event.created_at < created_before
        ]
        return sorted(items, key=lambda e: e.created_at)[:limit]

    def delete_by_account(self, account_id: str) -> int:
        with self._store.lock:
            ids = [eid for eid, e in self._store.events.items() if e.account_id == account_id]
            for eid in ids:
                del self._store.events[eid]
            return len(ids)


class FakeSubscriptionRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def find_by_id(self, subscription_id: str) -> Subscription | None:
        with self._store.lock:
            subscription = self._store.subscriptions.get(subscription_id)
            return subscription.model_copy() if subscription else None

    def find_active(self, account_id: str) -> Subscription | None:
        with self._store.lock:
            for subscription in self._store.subscriptions.values():
                if (
                    subscription.account_id == account_id
                    and subscription.status is SubscriptionStatus.ACTIVE
                ):
                    return subscription.model_copy()
        return None

    def list_by_account(self, account_id: str) -> list[Subscription]:
        with self._store.lock:
            items = [
                s.model_copy()
                for s in self._store.subscriptions.values()
                if s.account_id == account_id
            ]
        return sorted(items, key=lambda s: s.created_at, reverse=True)

    def expire_due(self, now: datetime) -> list[Subscription]:
        expired: list[Subscription] = []
        with self._store.lock:
            for subscription in self._store.subscriptions.values():
                if (
                    subscription.status is SubscriptionStatus.ACTIVE
                    and subscription.ends_at is not None
                    and subscription.ends_at <= now
                ):
                    subscription.status = SubscriptionStatus.EXPIRED
                    subscription.updated_at = now
                    expired.append(subscription.model_copy())
        return expired

    def delete_by_account(self, account_id: str) -> int:
        with self._store.lock:
            ids = [
                sid for sid, s in self._store.subscriptions.items() if s.account_id == account_id
            ]
            for sid in ids:
                del self._store.subscriptions[sid]
            return len(ids)


# -------- notifier / chat model --------


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int, str, str | None]] = []
        self._lock = threading.Lock()

    def balance_changed(
        self,
        account_id: str,
        balance: int,
        reason: str,
        usage_event_id: str | None = None,
    ) -> None:
        with self._lock:
            self.calls.append((account_id, balance, reason, usage_event_id))


class ScriptedChatModel:
    """invoke() 마다 responses 에서 하나씩 꺼내 응답하거나 예외를 던진다.

    responses 가 바닥나면 마지막 항목을 계속 사용한다.
    """

    def __init__(self, *responses: object, delay: float = 0.0) -> None:
        self._responses = list(responses) or ["ok"]
        self._delay = delay
        self._lock = threading.Lock()
        self.calls: list[list[BaseMessage]] = []

    def invoke(self, messages: list[BaseMessage]) -> AIMessage:
        with self._lock:
            self.calls.append(list(messages))
            response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if self._delay:
            time.sleep(self._delay)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, AIMessage):
            return response
        return AIMessage(content=str(response))


@dataclass
class Harness:
    store: InMemoryStore
    notifier: RecordingNotifier
    chat_model: ScriptedChatModel
    adapter: AIAdapter
    container: ServiceContainer
    sleeps: list[float]


def build_harness(
    *responses: object,
    config: AppConfig | None = None,
    delay: float = 0.0,
) -> Harness:
    config = config or AppConfig()
    store = InMemoryStore()
    notifier = RecordingNotifier()
    chat_model = ScriptedChatModel(*responses, delay=delay)
    sleeps: list[float] = []
    adapter = AIAdapter(
        chat_model,  # type: ignore[arg-type]
        "google/gemini-2.5-flash",
        config.ai,
        PricingService(config.pricing),
        sleep=sleeps.append,
    )
    container = build_container(
        config,
        account_repo=FakeAccountRepository(store),
        ledger_repo=FakeLedgerRepository(store),
        event_repo=FakeUsageEventRepository(store),
        subscription_repo=FakeSubscriptionRepository(store),
        notifier=notifier,
        adapter=adapter,
    )
    return Harness(
        store=store,
        notifier=notifier,
        chat_model=chat_model,
        adapter=adapter,
        container=container,
        sleeps=sleeps,
    )
