from __future__ import annotations

from pydantic import BaseModel, Field

from common.types.datetime import OptionalUtcDateTime, UtcDateTime

from ...config import PlanConfig
from ...models.subscription import Subscription


class PlanResponse(BaseModel):
    code: str
    label: str
    credits: int
    bonus_credits: int
    total_credits: int
    price: float
    valid_days: int | None

    @classmethod
    def from_config(cls, plan: PlanConfig) -> "PlanResponse":
        return cls(
            code=plan.code,
            label=plan.label,
            credits=plan.credits,
            bonus_credits=plan.bonus_credits,
            total_credits=plan.total_credits,
            price=plan.price,
            valid_days=plan.valid_days,
        )


class SubscriptionResponse(BaseModel):
    id: str | None
    account_id: str
    plan_label: str
    credits_granted: int
    remaining_credits: int
    price: float
    payment_id: str | None
    status: str
    starts_at: UtcDateTime
    ends_at: OptionalUtcDateTime = None
    reclaimed_credits: int
    cancelled_at: OptionalUtcDateTime = None

    @classmethod
    def from_domain(cls, subscription: Subscription) -> "SubscriptionResponse":
        return cls(
            id=subscription.id,
            account_id=subscription.account_id,
            plan_label=subscription.plan_label,
            credits_granted=subscription.credits_granted,
            remaining_credits=subscription.remaining_credits,
            price=subscription.price,
            payment_id=subscription.payment_id,
            status=subscription.status.value,
            starts_at=subscription.starts_at,
            ends_at=subscription.ends_at,
            reclaimed_credits=subscription.reclaimed_credits,
            cancelled_at=subscription.cancelled_at,
        )


class SubscriptionOverviewResponse(BaseModel):
    active: SubscriptionResponse | None
    history: list[SubscriptionResponse]


class PurchaseRequest(BaseModel):
    plan_code: str = Field(min_length=1)
    payment_id: str | None = None


class SubscriptionChangeResponse(BaseModel):
    subscription: SubscriptionResponse
    balance: int
