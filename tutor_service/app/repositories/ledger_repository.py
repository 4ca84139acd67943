"""원장 레포지토리 (Ledger Store).

잔액을 바꾸는 모든 연산은 이 클래스를 거친다. 각 연산은 MongoDB 멀티 도큐먼트
트랜잭션 하나로 실행되며, 잔액 감소는 항상 `balance >= amount` 조건부 업데이트로만
이루어지므로 동시 요청이 몰려도 잔액은 음수가 되지 않는다.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, TypeVar

from pymongo import MongoClient, ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from common.mongo.types import try_object_id
from common.types.datetime import utc_now

from ..exceptions import PersistenceError
from ..models.account import Account
from ..models.credit import CreditTransaction, CreditTransactionType
from ..models.subscription import Subscription, SubscriptionStatus
from ..models.usage import (
    Settlement,
    UsageEvent,
    UsageStatus,
    resolve_commit_charge,
)
from .documents.account_document import AccountDocument
from .documents.credit_document import CreditTransactionDocument
from .documents.subscription_document import SubscriptionDocument
from .documents.usage_event_document import UsageEventDocument
from .errors import translate_mongo_errors
from .interfaces import LedgerRepositoryInterface


logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerRepository(LedgerRepositoryInterface):
    """accounts / usage_events / subscriptions / credit_transactions 에 걸친 원자적 쓰기."""

    def __init__(self, client: MongoClient, database: Database) -> None:
        self._client = client
        self._db = database
        self._accounts = database["accounts"]
        self._events = database["usage_events"]
        self._subscriptions = database["subscriptions"]
        self._transactions = database["credit_transactions"]

    # -------- transaction helpers --------

    def _run(self, action: str, callback: Callable[[ClientSession], T]) -> T:
        with translate_mongo_errors(action):
            with self._client.start_session() as session:
                return session.with_transaction(
                    callback,
                    read_concern=ReadConcern("snapshot"),
                    write_concern=WriteConcern("majority"),
                )

    def _insert_transaction(
        self,
        session: ClientSession,
        account_id: str,
        tx_type: CreditTransactionType,
        amount: int,
        balance_after: int,
        reason: str,
        metadata: dict | None,
        now: datetime,
    ) -> None:
        tx = CreditTransaction(
            account_id=account_id,
            type=tx_type,
            amount=amount,
            balance_after=balance_after,
            reason=reason,
            metadata=metadata,
            created_at=now,
            updated_at=now,
        )
        payload = CreditTransactionDocument.from_domain(tx).to_mongo_record()
        self._transactions.insert_one(payload, session=session)

    def _balance_of(self, session: ClientSession, account_id: str) -> int:
        doc = self._accounts.find_one(
            {"account_id": account_id}, {"balance": 1}, session=session
        )
        return int(doc["balance"]) if doc else 0

    @staticmethod
    def _event_from(doc: dict[str, Any]) -> UsageEvent:
        return UsageEventDocument.model_validate(doc).to_domain()

    @staticmethod
    def _subscription_from(doc: dict[str, Any]) -> Subscription:
        return SubscriptionDocument.model_validate(doc).to_domain()

    # -------- accounts --------

    def open_account(
        self,
        account_id: str,
        email: str | None,
        initial_balance: int,
    ) -> tuple[Account, bool]:
        def callback(session: ClientSession) -> tuple[Account, bool]:
            existing = self._accounts.find_one({"account_id": account_id}, session=session)
            if existing:
                return AccountDocument.model_validate(existing).to_domain(), False

            now = utc_now()
            account = Account(
                account_id=account_id,
                email=email,
                balance=initial_balance,
                created_at=now,
                updated_at=now,
            )
            payload = AccountDocument.from_domain(account).to_mongo_record()
            self._accounts.insert_one(payload, session=session)
            if initial_balance > 0:
                self._insert_transaction(
                    session,
                    account_id,
                    CreditTransactionType.SIGNUP,
                    initial_balance,
                    initial_balance,
                    "signup bonus",
                    None,
                    now,
                )
            return AccountDocument.model_validate(payload).to_domain(), True

        try:
            return self._run("open_account", callback)
        except PersistenceError as exc:
            # 동시에 첫 로그인한 요청이 먼저 만든 경우 (uniq_account_id 위반)
            if not isinstance(exc.__cause__, DuplicateKeyError):
                raise
            with translate_mongo_errors("open_account"):
                doc = self._accounts.find_one({"account_id": account_id})
            if not doc:
                raise
            return AccountDocument.model_validate(doc).to_domain(), False

    # -------- usage events --------

    def deduct(self, event: UsageEvent) -> tuple[UsageEvent, int] | None:
        def callback(session: ClientSession) -> tuple[UsageEvent, int] | None:
            account = self._accounts.find_one_and_update(
                {"account_id": event.account_id, "balance": {"$gte": event.declared_cost}},
                {
                    "$inc": {"balance": -event.declared_cost},
                    "$set": {"updated_at": event.created_at},
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if account is None:
                return None

            payload = UsageEventDocument.from_domain(event).to_mongo_record()
            self._events.insert_one(payload, session=session)
            return self._event_from(payload), int(account["balance"])

        return self._run("deduct", callback)

    def commit(
        self,
        event_id: str,
        output: str,
        model: str | None,
        measured_cost: int,
    ) -> Settlement | None:
        oid = try_object_id(event_id)
        if oid is None:
            return None

        def callback(session: ClientSession) -> Settlement | None:
            now = utc_now()
            current = self._events.find_one({"_id": oid}, session=session)
            if current is None:
                return None
            event = self._event_from(current)
            if event.status is not UsageStatus.PENDING:
                return Settlement(
                    event=event,
                    balance=self._balance_of(session, event.account_id),
                    changed=False,
                )

            available = self._balance_of(session, event.account_id)
            actual_cost, delta = resolve_commit_charge(
                event.declared_cost, measured_cost, available
            )

            claimed = self._events.find_one_and_update(
                {"_id": oid, "status": UsageStatus.PENDING.value},
                {
                    "$set": {
                        "status": UsageStatus.COMMITTED.value,
                        "output": output,
                        "model": model,
                        "actual_cost": actual_cost,
                        "measured_cost": measured_cost,
                        "resolved_at": now,
                        "updated_at": now,
                    }
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if claimed is None:
                return Settlement(event=event, balance=available, changed=False)

            account = self._accounts.find_one_and_update(
                {"account_id": event.account_id, "balance": {"$gte": max(-delta, 0)}},
                {
                    "$inc": {"balance": delta, "lifetime_consumed": actual_cost},
                    "$set": {"updated_at": now},
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if account is None:
                # 트랜잭션을 중단시켜 이벤트를 pending 으로 되돌린다.
                raise PersistenceError(f"balance changed during commit (event_id={event_id})")

            if actual_cost > 0:
                self._consume_subscription_credits(session, event.account_id, actual_cost, now)

            return Settlement(
                event=self._event_from(claimed),
                balance=int(account["balance"]),
                changed=True,
            )

        return self._run("commit", callback)

    def _consume_subscription_credits(
        self, session: ClientSession, account_id: str, amount: int, now: datetime
    ) -> None:
        """구독 지급분을 기본 잔액보다 먼저 소진한 것으로 기록한다."""
        active = self._subscriptions.find_one(
            {
                "account_id": account_id,
                "status": SubscriptionStatus.ACTIVE.value,
                "remaining_credits": {"$gt": 0},
            },
            session=session,
        )
        if not active:
            return
        used = min(int(active["remaining_credits"]), amount)
        self._subscriptions.update_one(
            {"_id": active["_id"]},
            {"$inc": {"remaining_credits": -used}, "$set": {"updated_at": now}},
            session=session,
        )

    def release(
        self,
        event_id: str,
        status: UsageStatus,
        error_code: str | None,
    ) -> Settlement | None:
        if not status.is_terminal or status is UsageStatus.COMMITTED:
            raise ValueError(f"release status must be refunded or failed: {status}")
        oid = try_object_id(event_id)
        if oid is None:
            return None

        def callback(session: ClientSession) -> Settlement | None:
            now = utc_now()
            claimed = self._events.find_one_and_update(
                {"_id": oid, "status": UsageStatus.PENDING.value},
                {
                    "$set": {
                        "status": status.value,
                        "actual_cost": 0,
                        "error_code": error_code,
                        "resolved_at": now,
                        "updated_at": now,
                    }
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if claimed is None:
                current = self._events.find_one({"_id": oid}, session=session)
                if current is None:
                    return None
                event = self._event_from(current)
                return Settlement(
                    event=event,
                    balance=self._balance_of(session, event.account_id),
                    changed=False,
                )

            event = self._event_from(claimed)
            account = self._accounts.find_one_and_update(
                {"account_id": event.account_id},
                {
                    "$inc": {"balance": event.declared_cost},
                    "$set": {"updated_at": now},
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            balance = int(account["balance"]) if account else 0
            return Settlement(event=event, balance=balance, changed=True)

        return self._run("release", callback)

    # -------- grants / debits --------

    def grant(
        self,
        account_id: str,
        amount: int,
        tx_type: CreditTransactionType,
        reason: str,
        metadata: dict | None = None,
    ) -> int | None:
        if amount <= 0:
            raise ValueError("grant amount must be positive")

        def callback(session: ClientSession) -> int | None:
            now = utc_now()
            account = self._accounts.find_one_and_update(
                {"account_id": account_id},
                {"$inc": {"balance": amount}, "$set": {"updated_at": now}},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if account is None:
                return None
            balance = int(account["balance"])
            self._insert_transaction(
                session, account_id, tx_type, amount, balance, reason, metadata, now
            )
            return balance

        return self._run("grant", callback)

    def debit(
        self,
        account_id: str,
        amount: int,
        tx_type: CreditTransactionType,
        reason: str,
        metadata: dict | None = None,
    ) -> int | None:
        if amount <= 0:
            raise ValueError("debit amount must be positive")

        def callback(session: ClientSession) -> int | None:
            now = utc_now()
            account = self._accounts.find_one_and_update(
                {"account_id": account_id, "balance": {"$gte": amount}},
                {"$inc": {"balance": -amount}, "$set": {"updated_at": now}},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if account is None:
                return None
            balance = int(account["balance"])
            self._insert_transaction(
                session, account_id, tx_type, -amount, balance, reason, metadata, now
            )
            return balance

        return self._run("debit", callback)

    # -------- subscriptions --------

    def activate_subscription(
        self, subscription: Subscription
    ) -> tuple[Subscription, int] | None:
        """기존 active 구독을 만료시키고 새 구독을 만든 뒤 크레딧을 지급한다."""

        def callback(session: ClientSession) -> tuple[Subscription, int] | None:
            now = utc_now()
            if not self._accounts.find_one(
                {"account_id": subscription.account_id}, {"_id": 1}, session=session
            ):
                return None

            self._subscriptions.update_many(
                {
                    "account_id": subscription.account_id,
                    "status": SubscriptionStatus.ACTIVE.value,
                },
                {"$set": {"status": SubscriptionStatus.EXPIRED.value, "updated_at": now}},
                session=session,
            )

            payload = SubscriptionDocument.from_domain(subscription).to_mongo_record()
            self._subscriptions.insert_one(payload, session=session)

            account = self._accounts.find_one_and_update(
                {"account_id": subscription.account_id},
                {
                    "$inc": {"balance": subscription.credits_granted},
                    "$set": {"updated_at": now},
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            balance = int(account["balance"])
            self._insert_transaction(
                session,
                subscription.account_id,
                CreditTransactionType.SUBSCRIPTION_GRANT,
                subscription.credits_granted,
                balance,
                f"{subscription.plan_label} subscription",
                {"subscription_id": str(payload["_id"]), "payment_id": subscription.payment_id},
                now,
            )
            return self._subscription_from(payload), balance

        return self._run("activate_subscription", callback)

    def cancel_subscription(self, subscription_id: str) -> tuple[Subscription, int] | None:
        """구독을 취소하고 남은 지급분을 잔액 한도 안에서 회수한다.

        이미 active 가 아니면 상태를 바꾸지 않고 그대로 반환한다.
        """
        oid = try_object_id(subscription_id)
        if oid is None:
            return None

        def callback(session: ClientSession) -> tuple[Subscription, int] | None:
            now = utc_now()
            doc = self._subscriptions.find_one({"_id": oid}, session=session)
            if doc is None:
                return None
            subscription = self._subscription_from(doc)
            balance = self._balance_of(session, subscription.account_id)
            if subscription.status is not SubscriptionStatus.ACTIVE:
                return subscription, balance

            reclaim = min(subscription.remaining_credits, balance)
            if reclaim > 0:
                account = self._accounts.find_one_and_update(
                    {"account_id": subscription.account_id, "balance": {"$gte": reclaim}},
                    {"$inc": {"balance": -reclaim}, "$set": {"updated_at": now}},
                    return_document=ReturnDocument.AFTER,
                    session=session,
                )
                if account is None:
                    raise PersistenceError(
                        f"balance changed during cancellation (subscription_id={subscription_id})"
                    )
                balance = int(account["balance"])
                self._insert_transaction(
                    session,
                    subscription.account_id,
                    CreditTransactionType.RECLAIM,
                    -reclaim,
                    balance,
                    f"{subscription.plan_label} subscription cancelled",
                    {"subscription_id": subscription_id},
                    now,
                )

            updated = self._subscriptions.find_one_and_update(
                {"_id": oid, "status": SubscriptionStatus.ACTIVE.value},
                {
                    "$set": {
                        "status": SubscriptionStatus.CANCELLED.value,
                        "remaining_credits": 0,
                        "reclaimed_credits": reclaim,
                        "cancelled_at": now,
                        "updated_at": now,
                    }
                },
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            return self._subscription_from(updated), balance

        return self._run("cancel_subscription", callback)
