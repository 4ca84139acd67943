"""Atomic Deduction.

모든 도구 호출은 deduct() 하나를 거쳐 크레딧을 보류한다. 잔액 검사와 차감,
pending 이벤트 생성은 원장 레포지토리의 트랜잭션 하나로 처리되므로 같은 계정에
동시 요청이 몰려도 잔액이 음수가 되지 않는다.

metered() 는 차감부터 정산까지를 하나의 스코프로 묶는다. 블록 안에서 commit 하지
않고 빠져나가면(예외, 조기 반환 모두) 보류액을 환불한다.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from common.events.ledger import BalanceChangeReason
from common.types.datetime import utc_now

from ..exceptions import (
    AccountNotFoundError,
    InsufficientCreditsError,
    PersistenceError,
)
from ..models.usage import (
    AttachmentRef,
    OperationKind,
    Settlement,
    UsageEvent,
    UsageStatus,
)
from ..repositories.interfaces import (
    AccountRepositoryInterface,
    LedgerRepositoryInterface,
)
from .notifier import BalanceNotifier
from .reconciliation import Reconciler


logger = logging.getLogger(__name__)

ABORTED_ERROR_CODE = "aborted"
NOT_COMMITTED_ERROR_CODE = "not_committed"


class MeteredCall:
    """metered() 스코프 안에서 사용하는 핸들."""

    def __init__(self, event: UsageEvent, reconciler: Reconciler) -> None:
        self.event = event
        self._reconciler = reconciler
        self.settlement: Settlement | None = None

    @property
    def settled(self) -> bool:
        return self.settlement is not None

    def commit(self, output: str, model: str | None, measured_cost: int) -> Settlement:
        assert self.event.id is not None
        self.settlement = self._reconciler.commit(
            self.event.id, output, model, measured_cost
        )
        self.event = self.settlement.event
        return self.settlement

    def refund(self, error_code: str | None) -> Settlement:
        assert self.event.id is not None
        self.settlement = self._reconciler.refund(self.event.id, error_code)
        self.event = self.settlement.event
        return self.settlement


class LedgerService:
    def __init__(
        self,
        ledger_repo: LedgerRepositoryInterface,
        account_repo: AccountRepositoryInterface,
        reconciler: Reconciler,
        notifier: BalanceNotifier,
    ) -> None:
        self._ledger_repo = ledger_repo
        self._account_repo = account_repo
        self._reconciler = reconciler
        self._notifier = notifier

    def deduct(
        self,
        account_id: str,
        kind: OperationKind,
        amount: int,
        *,
        session_id: str | None = None,
        input_text: str = "",
        attachment: AttachmentRef | None = None,
    ) -> UsageEvent:
        """잔액이 충분하면 amount 만큼 차감하고 pending 이벤트를 반환한다.

        실패 시 아무것도 기록하지 않고 AccountNotFoundError 또는
        InsufficientCreditsError 를 발생시킨다.
        """
        if amount <= 0:
            raise ValueError("deduction amount must be positive")

        now = utc_now()
        event = UsageEvent(
            account_id=account_id,
            kind=kind,
            status=UsageStatus.PENDING,
            declared_cost=amount,
            session_id=session_id,
            input_text=input_text,
            attachment=attachment,
            created_at=now,
            updated_at=now,
        )

        result = self._ledger_repo.deduct(event)
        if result is None:
            account = self._account_repo.find_by_account_id(account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            logger.info(
                "deduction rejected (required=%d balance=%d)",
                amount,
                account.balance,
                extra={"account_id": account_id, "kind": kind.value},
            )
            raise InsufficientCreditsError(required=amount, balance=account.balance)

        created, balance = result
        logger.info(
            "credits held (amount=%d balance=%d)",
            amount,
            balance,
            extra={"account_id": account_id, "event_id": created.id, "kind": kind.value},
        )
        self._notifier.balance_changed(
            account_id, balance, BalanceChangeReason.DEDUCTED, created.id
        )
        return created

    @contextmanager
    def metered(
        self,
        account_id: str,
        kind: OperationKind,
        amount: int,
        *,
        session_id: str | None = None,
        input_text: str = "",
        attachment: AttachmentRef | None = None,
    ) -> Iterator[MeteredCall]:
        event = self.deduct(
            account_id,
            kind,
            amount,
            session_id=session_id,
            input_text=input_text,
            attachment=attachment,
        )
        call = MeteredCall(event, self._reconciler)
        try:
            yield call
        except BaseException as exc:
            if not call.settled:
                self._release_quietly(call, getattr(exc, "code", ABORTED_ERROR_CODE))
            raise
        else:
            if not call.settled:
                self._release_quietly(call, NOT_COMMITTED_ERROR_CODE)

    def _release_quietly(self, call: MeteredCall, error_code: str) -> None:
        """환불 저장에 실패하면 이벤트를 pending 으로 남겨 스위퍼가 정리하게 한다."""
        try:
            call.refund(error_code)
        except PersistenceError:
            logger.exception(
                "refund failed, usage event left pending for the sweeper",
                extra={"account_id": call.event.account_id, "event_id": call.event.id},
            )

    def current_balance(self, account_id: str) -> int | None:
        """현재 잔액. 계정이 없거나 저장소를 읽을 수 없으면 None."""
        try:
            account = self._account_repo.find_by_account_id(account_id)
        except PersistenceError:
            logger.warning(
                "balance lookup failed", extra={"account_id": account_id}
            )
            return None
        return account.balance if account is not None else None
