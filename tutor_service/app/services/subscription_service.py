"""구독(크레딧 충전) 서비스.

- 요금제 구매 또는 관리자 지급으로 구독이 생기면 크레딧이 즉시 잔액에 더해진다.
- 새 구독은 기존 active 구독을 만료시킨다 (계정당 active 최대 1개).
- 지급분은 기본 잔액보다 먼저 소진된 것으로 본다. 취소 시에는 아직 남은 지급분을
  현재 잔액 한도 안에서 회수한다.
- 만료 시 남은 지급분은 잔액에 그대로 둔다.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from common.events.ledger import BalanceChangeReason
from common.types.datetime import utc_now

from ..config import PlanConfig
from ..exceptions import (
    AccountNotFoundError,
    InvalidPayloadError,
    PlanNotFoundError,
    SubscriptionNotFoundError,
)
from ..models.subscription import Subscription, SubscriptionStatus
from ..repositories.interfaces import (
    LedgerRepositoryInterface,
    SubscriptionRepositoryInterface,
)
from .notifier import BalanceNotifier


logger = logging.getLogger(__name__)


class SubscriptionService:
    def __init__(
        self,
        plans: dict[str, PlanConfig],
        ledger_repo: LedgerRepositoryInterface,
        subscription_repo: SubscriptionRepositoryInterface,
        notifier: BalanceNotifier,
    ) -> None:
        self._plans = plans
        self._ledger_repo = ledger_repo
        self._subscription_repo = subscription_repo
        self._notifier = notifier

    def list_plans(self) -> list[PlanConfig]:
        return list(self._plans.values())

    def purchase(
        self, account_id: str, plan_code: str, payment_id: str | None = None
    ) -> tuple[Subscription, int]:
        """요금제 카탈로그에서 구독을 시작한다. 결제 검증은 호출 측 책임이다."""
        plan = self._plans.get(plan_code.strip().lower())
        if plan is None:
            raise PlanNotFoundError(f"plan not found: {plan_code}")
        return self.grant(
            account_id,
            plan_label=plan.label,
            credits=plan.total_credits,
            price=plan.price,
            valid_days=plan.valid_days,
            payment_id=payment_id,
        )

    def grant(
        self,
        account_id: str,
        *,
        plan_label: str,
        credits: int,
        price: float = 0.0,
        valid_days: int | None = None,
        payment_id: str | None = None,
    ) -> tuple[Subscription, int]:
        if credits <= 0:
            raise InvalidPayloadError("credits must be positive")
        if valid_days is not None and valid_days <= 0:
            raise InvalidPayloadError("valid_days must be positive")

        now = utc_now()
        subscription = Subscription(
            account_id=account_id,
            plan_label=plan_label,
            credits_granted=credits,
            remaining_credits=credits,
            price=price,
            payment_id=payment_id,
            status=SubscriptionStatus.ACTIVE,
            starts_at=now,
            ends_at=now + timedelta(days=valid_days) if valid_days else None,
            created_at=now,
            updated_at=now,
        )
        result = self._ledger_repo.activate_subscription(subscription)
        if result is None:
            raise AccountNotFoundError(account_id)

        created, balance = result
        logger.info(
            "subscription activated (plan=%s credits=%d balance=%d)",
            plan_label,
            credits,
            balance,
            extra={"account_id": account_id},
        )
        self._notifier.balance_changed(account_id, balance, BalanceChangeReason.GRANTED)
        return created, balance

    def cancel(self, subscription_id: str) -> tuple[Subscription, int]:
        result = self._ledger_repo.cancel_subscription(subscription_id)
        if result is None:
            raise SubscriptionNotFoundError(f"subscription not found: {subscription_id}")

        subscription, balance = result
        if subscription.reclaimed_credits > 0:
            logger.info(
                "subscription cancelled (reclaimed=%d balance=%d)",
                subscription.reclaimed_credits,
                balance,
                extra={"account_id": subscription.account_id},
            )
            self._notifier.balance_changed(
                subscription.account_id, balance, BalanceChangeReason.DEBITED
            )
        return subscription, balance

    def expire_due(self) -> list[Subscription]:
        expired = self._subscription_repo.expire_due(utc_now())
        for subscription in expired:
            logger.info(
                "subscription expired (plan=%s)",
                subscription.plan_label,
                extra={"account_id": subscription.account_id},
            )
        return expired

    def get_active(self, account_id: str) -> Subscription | None:
        return self._subscription_repo.find_active(account_id)

    def list_by_account(self, account_id: str) -> list[Subscription]:
        return self._subscription_repo.list_by_account(account_id)
