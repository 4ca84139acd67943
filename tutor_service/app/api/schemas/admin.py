from __future__ import annotations

from pydantic import BaseModel, Field

from ...models.account import AccountRole


class AdjustCreditsRequest(BaseModel):
    """관리자 크레딧 조정. 양수는 지급, 음수는 차감."""

    amount: int
    reason: str = Field(min_length=1, max_length=200)


class BalanceResponse(BaseModel):
    account_id: str
    balance: int


class SetRoleRequest(BaseModel):
    role: AccountRole


class GrantSubscriptionRequest(BaseModel):
    """관리자 수동 구독 지급."""

    plan_label: str = Field(min_length=1)
    credits: int = Field(gt=0)
    price: float = Field(default=0.0, ge=0)
    valid_days: int | None = Field(default=None, gt=0)
