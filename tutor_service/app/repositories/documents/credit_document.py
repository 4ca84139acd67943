"""크레딧 트랜잭션 MongoDB 도큐먼트.

사용 이벤트 이외의 잔액 변동(가입 지급, 구독 지급, 관리자 조정, 회수) 감사 로그.
"""

from __future__ import annotations

from common.mongo.types import (
    BaseDocument,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.credit import CreditTransaction, CreditTransactionType


class CreditTransactionDocument(BaseDocument):
    """MongoDB credit_transactions 컬렉션 도큐먼트 모델."""

    account_id: str
    type: str
    amount: int
    balance_after: int | None = None
    reason: str
    metadata: dict | None = None

    @classmethod
    def from_domain(cls, tx: CreditTransaction) -> "CreditTransactionDocument":
        data = build_document_data_from_domain(tx)
        return cls.model_validate(data)

    def to_domain(self) -> CreditTransaction:
        return CreditTransaction(
            id=from_object_id(self.id),
            account_id=self.account_id,
            type=CreditTransactionType(self.type),
            amount=self.amount,
            balance_after=self.balance_after,
            reason=self.reason,
            metadata=self.metadata,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
