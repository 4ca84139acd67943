from __future__ import annotations

from pydantic import BaseModel

from common.types.datetime import UtcDateTime

from ...models.account import Account, AccountRole


class EnsureAccountRequest(BaseModel):
    """첫 인증 시 계정 생성 요청."""

    email: str | None = None


class AccountResponse(BaseModel):
    account_id: str
    email: str | None
    balance: int
    lifetime_consumed: int
    role: AccountRole
    created_at: UtcDateTime

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        return cls(
            account_id=account.account_id,
            email=account.email,
            balance=account.balance,
            lifetime_consumed=account.lifetime_consumed,
            role=account.role,
            created_at=account.created_at,
        )


class EnsureAccountResponse(BaseModel):
    account: AccountResponse
    created: bool


class AuthorizeResponse(BaseModel):
    account_id: str
    kind: str
    declared_cost: int
    balance: int
    authorized: bool
    shortfall: int
