from __future__ import annotations

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.subscription import Subscription, SubscriptionStatus


class SubscriptionDocument(BaseDocument):
    """MongoDB subscriptions 컬렉션 도큐먼트 모델."""

    account_id: str
    plan_label: str
    credits_granted: int
    remaining_credits: int
    price: float
    payment_id: str | None = None
    status: str
    starts_at: MongoDateTime
    ends_at: MongoDateTime | None = None
    reclaimed_credits: int = 0
    cancelled_at: MongoDateTime | None = None

    @classmethod
    def from_domain(cls, subscription: Subscription) -> "SubscriptionDocument":
        data = build_document_data_from_domain(subscription)
        return cls.model_validate(data)

    def to_domain(self) -> Subscription:
        return Subscription(
            id=from_object_id(self.id),
            account_id=self.account_id,
            plan_label=self.plan_label,
            credits_granted=self.credits_granted,
            remaining_credits=self.remaining_credits,
            price=self.price,
            payment_id=self.payment_id,
            status=SubscriptionStatus(self.status),
            starts_at=self.starts_at,
            ends_at=self.ends_at,
            reclaimed_credits=self.reclaimed_credits,
            cancelled_at=self.cancelled_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
