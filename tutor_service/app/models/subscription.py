"""구독(크레딧 충전) 도메인 모델."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Subscription(BaseModel):
    """계정당 active 는 최대 1개. 상태는 active -> expired|cancelled 로만 바뀐다."""

    id: str | None = None
    account_id: str
    plan_label: str
    credits_granted: int
    remaining_credits: int  # 이 지급분 중 아직 사용되지 않은 양 (지급분 우선 소진)
    price: float
    payment_id: str | None = None
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    starts_at: datetime
    ends_at: datetime | None = None
    reclaimed_credits: int = 0
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
