from __future__ import annotations

import pytest

from tutor_service.app.exceptions import (
    AccountNotFoundError,
    InsufficientCreditsError,
    InvalidPayloadError,
    PermissionDeniedError,
)
from tutor_service.app.models.account import AccountRole
from tutor_service.app.models.credit import CreditTransactionType
from tutor_service.app.models.usage import OperationKind
from tutor_service.tests.fakes import build_harness


def test_ensure_account_grants_signup_credits_once() -> None:
    harness = build_harness()
    accounts = harness.container.accounts

    account, created = accounts.ensure_account("user-001", "student@example.com")
    again, created_again = accounts.ensure_account("user-001")

    assert created is True
    assert account.balance == 100
    assert account.email == "student@example.com"
    assert created_again is False
    assert again.balance == 100
    assert [tx.type for tx in harness.store.transactions] == [CreditTransactionType.SIGNUP]


def test_get_unknown_account_raises() -> None:
    harness = build_harness()

    with pytest.raises(AccountNotFoundError):
        harness.container.accounts.get("ghost")


def test_require_admin_checks_role() -> None:
    harness = build_harness()
    harness.store.add_account("admin-001", role=AccountRole.ADMIN)
    harness.store.add_account("user-001")
    accounts = harness.container.accounts

    assert accounts.require_admin("admin-001").account_id == "admin-001"
    with pytest.raises(PermissionDeniedError):
        accounts.require_admin("user-001")
    with pytest.raises(PermissionDeniedError):
        accounts.require_admin(None)


def test_adjust_credits_grants_and_debits() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=10)
    accounts = harness.container.accounts

    assert accounts.adjust_credits("user-001", 40, "support refund", "admin-001") == 50
    assert accounts.adjust_credits("user-001", -15, "abuse", "admin-001") == 35

    granted, debited = harness.store.transactions
    assert granted.type is CreditTransactionType.ADMIN_ADJUST
    assert granted.amount == 40
    assert granted.metadata == {"admin_id": "admin-001"}
    assert debited.amount == -15
    assert debited.balance_after == 35


def test_adjust_credits_debit_cannot_overdraw() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=10)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        harness.container.accounts.adjust_credits("user-001", -20, "abuse", "admin-001")

    assert exc_info.value.shortfall == 10
    assert harness.store.balance("user-001") == 10


def test_adjust_credits_rejects_zero() -> None:
    harness = build_harness()
    harness.store.add_account("user-001", balance=10)

    with pytest.raises(InvalidPayloadError):
        harness.container.accounts.adjust_credits("user-001", 0, "noop", "admin-001")


def test_set_role_and_list() -> None:
    harness = build_harness()
    harness.store.add_account("user-001")
    harness.store.add_account("user-002")
    accounts = harness.container.accounts

    updated = accounts.set_role("user-002", AccountRole.ADMIN)

    assert updated.is_admin
    assert accounts.list().total == 2
    with pytest.raises(AccountNotFoundError):
        accounts.set_role("ghost", AccountRole.ADMIN)


def test_delete_removes_account_and_history() -> None:
    harness = build_harness("answer")
    harness.store.add_account("user-001", balance=100)
    harness.container.tools.run(
        "user-001", OperationKind.TEXT_QUESTION, {"question": "what is pi?"}
    )
    harness.container.subscriptions.grant("user-001", plan_label="Gift", credits=10)

    harness.container.accounts.delete("user-001")

    assert "user-001" not in harness.store.accounts
    assert harness.store.events == {}
    assert harness.store.subscriptions == {}
    with pytest.raises(AccountNotFoundError):
        harness.container.accounts.delete("user-001")
