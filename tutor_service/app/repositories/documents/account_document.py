from __future__ import annotations

from common.mongo.types import (
    BaseDocument,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.account import Account, AccountRole


class AccountDocument(BaseDocument):
    """MongoDB accounts 컬렉션 도큐먼트 모델."""

    account_id: str
    email: str | None = None
    balance: int
    lifetime_consumed: int = 0
    role: str = AccountRole.USER.value

    @classmethod
    def from_domain(cls, account: Account) -> "AccountDocument":
        data = build_document_data_from_domain(account)
        return cls.model_validate(data)

    def to_domain(self) -> Account:
        return Account(
            id=from_object_id(self.id),
            account_id=self.account_id,
            email=self.email,
            balance=self.balance,
            lifetime_consumed=self.lifetime_consumed,
            role=AccountRole(self.role),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
