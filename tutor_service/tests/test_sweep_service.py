from __future__ import annotations

from datetime import timedelta

from common.types.datetime import utc_now
from tutor_service.app.models.usage import OperationKind, UsageStatus
from tutor_service.tests.fakes import build_harness


def test_sweep_expires_stale_pending_events() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=100)
    ledger = harness.container.ledger

    stale = ledger.deduct("user-001", OperationKind.RESEARCH_PAPER, 50)
    fresh = ledger.deduct("user-001", OperationKind.TEXT_QUESTION, 5)
    harness.store.events[stale.id].created_at = utc_now() - timedelta(hours=1)

    report = harness.container.sweeper.run_once()

    assert report.expired_events == [stale.id]
    assert report.failed_events == []
    assert harness.store.events[stale.id].status is UsageStatus.FAILED
    assert harness.store.events[fresh.id].status is UsageStatus.PENDING
    assert harness.store.balance("user-001") == 95


def test_sweep_is_idempotent() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=100)
    stale = harness.container.ledger.deduct("user-001", OperationKind.MIND_MAP, 25)
    harness.store.events[stale.id].created_at = utc_now() - timedelta(hours=1)
    sweeper = harness.container.sweeper

    sweeper.run_once()
    second = sweeper.run_once()

    assert second.expired_events == []
    assert harness.store.balance("user-001") == 100


def test_sweep_reports_failures_and_continues() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=100)
    ledger = harness.container.ledger
    first = ledger.deduct("user-001", OperationKind.TEXT_QUESTION, 5)
    second = ledger.deduct("user-001", OperationKind.TEXT_QUESTION, 5)
    past = utc_now() - timedelta(hours=1)
    harness.store.events[first.id].created_at = past
    harness.store.events[second.id].created_at = past + timedelta(seconds=1)
    harness.store.failures.add("release")

    report = harness.container.sweeper.run_once()

    assert report.failed_events == [first.id]
    assert report.expired_events == [second.id]
    assert harness.store.balance("user-001") == 95


def test_sweep_expires_due_subscriptions() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=0)
    subscription, _ = harness.container.subscriptions.grant(
        "user-001", plan_label="Gift", credits=10, valid_days=1
    )
    harness.store.subscriptions[subscription.id].ends_at = utc_now() - timedelta(seconds=1)

    report = harness.container.sweeper.run_once()

    assert report.expired_subscriptions == 1
