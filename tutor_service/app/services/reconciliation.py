"""Reconciliation.

pending 사용 이벤트를 정확히 한 번 종료 상태로 보낸다.

- commit: 출력과 최종 청구액을 기록하고 lifetime_consumed 를 올린다.
- refund: AI 호출이 실패한 이벤트의 보류액 전체를 돌려준다.
- expire: 스위퍼가 찾은 방치된 pending 이벤트를 failed 로 정리하고 환불한다.

이미 종료된 이벤트에 대한 재요청은 아무것도 바꾸지 않는다.
"""

from __future__ import annotations

import logging

from common.events.ledger import BalanceChangeReason

from ..exceptions import UsageEventNotFoundError
from ..models.usage import Settlement, UsageStatus
from ..repositories.interfaces import LedgerRepositoryInterface
from .notifier import BalanceNotifier


logger = logging.getLogger(__name__)

EXPIRED_PENDING_ERROR_CODE = "expired_pending"


class Reconciler:
    def __init__(
        self,
        ledger_repo: LedgerRepositoryInterface,
        notifier: BalanceNotifier,
    ) -> None:
        self._ledger_repo = ledger_repo
        self._notifier = notifier

    def commit(
        self,
        event_id: str,
        output: str,
        model: str | None,
        measured_cost: int,
    ) -> Settlement:
        settlement = self._ledger_repo.commit(event_id, output, model, measured_cost)
        if settlement is None:
            raise UsageEventNotFoundError(f"usage event not found: {event_id}")

        event = settlement.event
        if not settlement.changed:
            logger.info(
                "usage event already settled (status=%s)",
                event.status.value,
                extra={"account_id": event.account_id, "event_id": event_id},
            )
            return settlement

        if event.actual_cost is not None and event.actual_cost < measured_cost:
            logger.warning(
                "measured cost clamped to available balance (measured=%d charged=%d)",
                measured_cost,
                event.actual_cost,
                extra={"account_id": event.account_id, "event_id": event_id},
            )
        logger.info(
            "usage event committed (actual_cost=%s)",
            event.actual_cost,
            extra={
                "account_id": event.account_id,
                "event_id": event_id,
                "kind": event.kind.value,
            },
        )
        self._notifier.balance_changed(
            event.account_id, settlement.balance, BalanceChangeReason.COMMITTED, event_id
        )
        return settlement

    def refund(self, event_id: str, error_code: str | None) -> Settlement:
        return self._release(
            event_id, UsageStatus.REFUNDED, error_code, BalanceChangeReason.REFUNDED
        )

    def expire(self, event_id: str) -> Settlement:
        return self._release(
            event_id,
            UsageStatus.FAILED,
            EXPIRED_PENDING_ERROR_CODE,
            BalanceChangeReason.EXPIRED_PENDING,
        )

    def _release(
        self,
        event_id: str,
        status: UsageStatus,
        error_code: str | None,
        reason: str,
    ) -> Settlement:
        settlement = self._ledger_repo.release(event_id, status, error_code)
        if settlement is None:
            raise UsageEventNotFoundError(f"usage event not found: {event_id}")

        event = settlement.event
        if not settlement.changed:
            logger.info(
                "usage event already settled (status=%s)",
                event.status.value,
                extra={"account_id": event.account_id, "event_id": event_id},
            )
            return settlement

        logger.info(
            "usage event released (status=%s, refunded=%d, error_code=%s)",
            status.value,
            event.declared_cost,
            error_code,
            extra={
                "account_id": event.account_id,
                "event_id": event_id,
                "kind": event.kind.value,
            },
        )
        self._notifier.balance_changed(event.account_id, settlement.balance, reason, event_id)
        return settlement
