from __future__ import annotations

import threading

import pytest

from tutor_service.app.exceptions import (
    AccountNotFoundError,
    FatalAIError,
    InsufficientCreditsError,
)
from tutor_service.app.models.usage import OperationKind, UsageStatus
from tutor_service.tests.fakes import build_harness


def test_deduct_holds_credits_and_records_pending_event() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=100)

    event = harness.container.ledger.deduct("user-001", OperationKind.TEXT_QUESTION, 5)

    assert event.id in harness.store.events
    assert event.status is UsageStatus.PENDING
    assert event.declared_cost == 5
    assert harness.store.balance("user-001") == 95
    assert harness.notifier.calls[-1] == ("user-001", 95, "deducted", event.id)


def test_deduct_rejects_without_recording_when_balance_is_short() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=3)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        harness.container.ledger.deduct("user-001", OperationKind.TEXT_QUESTION, 5)

    assert exc_info.value.shortfall == 2
    assert harness.store.events == {}
    assert harness.store.balance("user-001") == 3
    assert harness.notifier.calls == []


def test_deduct_raises_account_not_found_for_unknown_account() -> None:
    harness = build_harness()

    with pytest.raises(AccountNotFoundError):
        harness.container.ledger.deduct("ghost", OperationKind.TEXT_QUESTION, 5)


def test_deduct_rejects_non_positive_amount() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=100)

    with pytest.raises(ValueError):
        harness.container.ledger.deduct("user-001", OperationKind.TEXT_QUESTION, 0)


def test_metered_refunds_hold_when_body_raises() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=100)

    with pytest.raises(FatalAIError):
        with harness.container.ledger.metered(
            "user-001", OperationKind.MIND_MAP, 25
        ) as call:
            assert harness.store.balance("user-001") == 75
            raise FatalAIError("boom")

    assert harness.store.balance("user-001") == 100
    event = harness.store.events[call.event.id]
    assert event.status is UsageStatus.REFUNDED
    assert event.actual_cost == 0
    assert event.error_code == "generation_failed"


def test_metered_refunds_hold_when_body_returns_without_commit() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=100)

    with harness.container.ledger.metered("user-001", OperationKind.TEXT_EDITING, 8) as call:
        pass

    assert harness.store.balance("user-001") == 100
    assert harness.store.events[call.event.id].error_code == "not_committed"


def test_metered_does_not_refund_after_commit() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=100)

    with harness.container.ledger.metered("user-001", OperationKind.TEXT_QUESTION, 5) as call:
        call.commit("answer", "gemini-2.5-flash", 5)

    event = harness.store.events[call.event.id]
    assert event.status is UsageStatus.COMMITTED
    assert harness.store.balance("user-001") == 95


def test_metered_leaves_event_pending_when_refund_cannot_be_stored() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=100)

    with pytest.raises(RuntimeError):
        with harness.container.ledger.metered(
            "user-001", OperationKind.TEXT_QUESTION, 5
        ) as call:
            harness.store.failures.add("release")
            raise RuntimeError("worker crashed")

    # 원래 예외가 그대로 올라가고, 이벤트는 스위퍼가 정리할 때까지 pending
    assert harness.store.events[call.event.id].status is UsageStatus.PENDING
    assert harness.store.balance("user-001") == 95


def test_concurrent_deductions_never_overdraw_the_account() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=100)
    ledger = harness.container.ledger

    successes: list[str] = []
    rejections: list[InsufficientCreditsError] = []
    lock = threading.Lock()
    start = threading.Barrier(40)

    def worker() -> None:
        start.wait()
        try:
            with ledger.metered("user-001", OperationKind.TEXT_QUESTION, 5) as call:
                call.commit("answer", "gemini-2.5-flash", 5)
        except InsufficientCreditsError as exc:
            with lock:
                rejections.append(exc)
            return
        with lock:
            successes.append(call.event.id or "")

    threads = [threading.Thread(target=worker) for _ in range(40)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(successes) == 20
    assert len(rejections) == 20
    assert harness.store.balance("user-001") == 0

    account = harness.store.accounts["user-001"]
    assert account.lifetime_consumed == harness.store.committed_total("user-001") == 100
