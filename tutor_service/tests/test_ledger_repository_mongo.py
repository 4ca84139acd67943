"""LedgerRepository 를 실제 MongoDB 트랜잭션으로 검증한다.

MONGO_URI 가 replica set 을 가리킬 때만 실행된다 (트랜잭션은 standalone 에서 동작하지 않음).
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Iterator
from datetime import timedelta

import pytest
from pymongo import MongoClient

from common.mongo.client import _ensure_indexes
from common.types.datetime import utc_now
from tutor_service.app.models.subscription import Subscription, SubscriptionStatus
from tutor_service.app.models.usage import OperationKind, UsageEvent, UsageStatus
from tutor_service.app.repositories.ledger_repository import LedgerRepository


MONGO_URI = os.getenv("MONGO_URI")

pytestmark = pytest.mark.skipif(not MONGO_URI, reason="MONGO_URI is not set")


@pytest.fixture
def repo() -> Iterator[LedgerRepository]:
    client: MongoClient = MongoClient(MONGO_URI, tz_aware=True, serverSelectionTimeoutMS=3000)
    if not client.admin.command("hello").get("setName"):
        client.close()
        pytest.skip("MongoDB transactions require a replica set")

    db_name = f"quizora_test_{uuid.uuid4().hex[:8]}"
    db = client[db_name]
    _ensure_indexes(db)
    try:
        yield LedgerRepository(client, db)
    finally:
        client.drop_database(db_name)
        client.close()


def _open(repo: LedgerRepository, balance: int) -> str:
    account_id = f"user-{uuid.uuid4().hex[:6]}"
    repo.open_account(account_id, None, balance)
    return account_id


def _pending(account_id: str, amount: int) -> UsageEvent:
    now = utc_now()
    return UsageEvent(
        account_id=account_id,
        kind=OperationKind.CHAT_TURN,
        declared_cost=amount,
        created_at=now,
        updated_at=now,
    )


def test_deduct_requires_enough_balance(repo: LedgerRepository) -> None:
    account_id = _open(repo, 4)

    assert repo.deduct(_pending(account_id, 5)) is None

    event, balance = repo.deduct(_pending(account_id, 4))
    assert balance == 0
    assert event.id is not None
    assert event.status is UsageStatus.PENDING


def test_commit_clamps_extra_charge_to_balance(repo: LedgerRepository) -> None:
    account_id = _open(repo, 10)
    event, _ = repo.deduct(_pending(account_id, 5))

    settlement = repo.commit(event.id, "long answer", "gemini-2.5-flash", 20)

    assert settlement.changed is True
    assert settlement.balance == 0
    assert settlement.event.status is UsageStatus.COMMITTED
    assert settlement.event.actual_cost == 10

    again = repo.commit(event.id, "long answer", "gemini-2.5-flash", 20)
    assert again.changed is False
    assert again.balance == 0


def test_commit_refunds_unused_hold(repo: LedgerRepository) -> None:
    account_id = _open(repo, 10)
    event, _ = repo.deduct(_pending(account_id, 10))

    settlement = repo.commit(event.id, "short", None, 3)

    assert settlement.event.actual_cost == 3
    assert settlement.balance == 7


def test_release_restores_hold_once(repo: LedgerRepository) -> None:
    account_id = _open(repo, 10)
    event, _ = repo.deduct(_pending(account_id, 6))

    released = repo.release(event.id, UsageStatus.REFUNDED, "service_busy")
    repeated = repo.release(event.id, UsageStatus.REFUNDED, "service_busy")
    late_commit = repo.commit(event.id, "answer", None, 6)

    assert released.changed is True
    assert released.balance == 10
    assert released.event.error_code == "service_busy"
    assert repeated.changed is False
    assert repeated.balance == 10
    assert late_commit.changed is False
    assert late_commit.event.status is UsageStatus.REFUNDED


def test_subscription_credits_are_consumed_then_reclaimed(repo: LedgerRepository) -> None:
    account_id = _open(repo, 0)
    now = utc_now()
    subscription, balance = repo.activate_subscription(
        Subscription(
            account_id=account_id,
            plan_label="Basic",
            credits_granted=50,
            remaining_credits=50,
            price=9.99,
            starts_at=now,
            ends_at=now + timedelta(days=30),
            created_at=now,
            updated_at=now,
        )
    )
    assert balance == 50

    event, _ = repo.deduct(_pending(account_id, 5))
    repo.commit(event.id, "answer", None, 5)

    cancelled, balance = repo.cancel_subscription(subscription.id)

    assert cancelled.status is SubscriptionStatus.CANCELLED
    assert cancelled.reclaimed_credits == 45
    assert cancelled.remaining_credits == 0
    assert balance == 0
