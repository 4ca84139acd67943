"""원장(잔액) 관련 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self


class LedgerEventType:
    """원장 이벤트 타입 상수."""

    BALANCE_CHANGED = "ledger.balance_changed"


class BalanceChangeReason:
    """잔액이 바뀐 원인."""

    DEDUCTED = "deducted"
    COMMITTED = "committed"
    REFUNDED = "refunded"
    EXPIRED_PENDING = "expired_pending"
    GRANTED = "granted"
    DEBITED = "debited"


@dataclass(slots=True)
class BalanceChangedEvent:
    """잔액 변경 이벤트.

    차감/정산/환불/지급 직후 발행된다. 클라이언트는 이 신호로 잔액 캐시를 무효화한다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    account_id: str
    balance: int
    reason: str
    usage_event_id: str | None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            account_id=str(data["account_id"]),
            balance=int(data["balance"]),
            reason=str(data["reason"]),
            usage_event_id=data.get("usage_event_id"),
        )
