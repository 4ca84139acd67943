"""계정 서비스.

첫 인증 시 가입 크레딧과 함께 계정을 만들고, 관리자용 조회/권한/크레딧 조정/삭제를 제공한다.
"""

from __future__ import annotations

import logging

from common.events.ledger import BalanceChangeReason
from common.schemas.pagination import PaginatedResponse, normalize_paging

from ..exceptions import (
    AccountNotFoundError,
    InsufficientCreditsError,
    InvalidPayloadError,
    PermissionDeniedError,
)
from ..models.account import Account, AccountRole
from ..models.credit import CreditTransactionType
from ..repositories.interfaces import (
    AccountRepositoryInterface,
    LedgerRepositoryInterface,
    SubscriptionRepositoryInterface,
    UsageEventRepositoryInterface,
)
from .notifier import BalanceNotifier


logger = logging.getLogger(__name__)


class AccountsService:
    def __init__(
        self,
        signup_credits: int,
        account_repo: AccountRepositoryInterface,
        ledger_repo: LedgerRepositoryInterface,
        event_repo: UsageEventRepositoryInterface,
        subscription_repo: SubscriptionRepositoryInterface,
        notifier: BalanceNotifier,
    ) -> None:
        self._signup_credits = signup_credits
        self._account_repo = account_repo
        self._ledger_repo = ledger_repo
        self._event_repo = event_repo
        self._subscription_repo = subscription_repo
        self._notifier = notifier

    def ensure_account(self, account_id: str, email: str | None = None) -> tuple[Account, bool]:
        """계정이 없으면 가입 크레딧과 함께 만든다. (계정, 새로 생성됐는지) 반환."""
        account, created = self._ledger_repo.open_account(
            account_id, email, self._signup_credits
        )
        if created:
            logger.info(
                "account opened (signup_credits=%d)",
                self._signup_credits,
                extra={"account_id": account_id},
            )
        return account, created

    def get(self, account_id: str) -> Account:
        account = self._account_repo.find_by_account_id(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def require_admin(self, account_id: str | None) -> Account:
        if not account_id:
            raise PermissionDeniedError("administrator account id is required")
        account = self._account_repo.find_by_account_id(account_id)
        if account is None or not account.is_admin:
            raise PermissionDeniedError("administrator role is required")
        return account

    def list(self, page: int = 1, page_size: int = 20) -> PaginatedResponse[Account]:
        page, page_size = normalize_paging(page, page_size)
        items, total = self._account_repo.list(page, page_size)
        return PaginatedResponse(items=items, total=total, page=page, page_size=page_size)

    def set_role(self, account_id: str, role: AccountRole) -> Account:
        account = self._account_repo.set_role(account_id, role)
        if account is None:
            raise AccountNotFoundError(account_id)
        logger.info("account role changed to %s", role.value, extra={"account_id": account_id})
        return account

    def adjust_credits(self, account_id: str, amount: int, reason: str, admin_id: str) -> int:
        """양수는 지급, 음수는 잔액 한도 안에서의 조건부 차감. 새 잔액을 반환한다."""
        if amount == 0:
            raise InvalidPayloadError("amount must not be zero")

        metadata = {"admin_id": admin_id}
        if amount > 0:
            balance = self._ledger_repo.grant(
                account_id, amount, CreditTransactionType.ADMIN_ADJUST, reason, metadata
            )
            if balance is None:
                raise AccountNotFoundError(account_id)
            change_reason = BalanceChangeReason.GRANTED
        else:
            balance = self._ledger_repo.debit(
                account_id, -amount, CreditTransactionType.ADMIN_ADJUST, reason, metadata
            )
            if balance is None:
                current = self.get(account_id)
                raise InsufficientCreditsError(required=-amount, balance=current.balance)
            change_reason = BalanceChangeReason.DEBITED

        logger.info(
            "credits adjusted by admin (amount=%d balance=%d)",
            amount,
            balance,
            extra={"account_id": account_id},
        )
        self._notifier.balance_changed(account_id, balance, change_reason)
        return balance

    def delete(self, account_id: str) -> None:
        """계정과 사용 이력, 구독, 트랜잭션 로그를 모두 삭제한다."""
        if not self._account_repo.delete_by_account_id(account_id):
            raise AccountNotFoundError(account_id)
        events = self._event_repo.delete_by_account(account_id)
        subscriptions = self._subscription_repo.delete_by_account(account_id)
        logger.info(
            "account deleted (usage_events=%d subscriptions=%d)",
            events,
            subscriptions,
            extra={"account_id": account_id},
        )
