from __future__ import annotations

from fastapi import APIRouter

from ..deps import ContainerDep
from ..schemas.subscriptions import (
    PlanResponse,
    PurchaseRequest,
    SubscriptionChangeResponse,
    SubscriptionOverviewResponse,
    SubscriptionResponse,
)

router = APIRouter()


@router.get("/plans", response_model=list[PlanResponse], summary="요금제 목록")
def list_plans(container: ContainerDep) -> list[PlanResponse]:
    return [PlanResponse.from_config(plan) for plan in container.subscriptions.list_plans()]


@router.get(
    "/{account_id}",
    response_model=SubscriptionOverviewResponse,
    summary="현재 구독 및 이력",
)
def get_subscriptions(account_id: str, container: ContainerDep) -> SubscriptionOverviewResponse:
    container.accounts.get(account_id)
    active = container.subscriptions.get_active(account_id)
    history = container.subscriptions.list_by_account(account_id)
    return SubscriptionOverviewResponse(
        active=SubscriptionResponse.from_domain(active) if active else None,
        history=[SubscriptionResponse.from_domain(item) for item in history],
    )


@router.post(
    "/{account_id}/purchase",
    response_model=SubscriptionChangeResponse,
    summary="요금제 구매",
)
def purchase(
    account_id: str,
    body: PurchaseRequest,
    container: ContainerDep,
) -> SubscriptionChangeResponse:
    subscription, balance = container.subscriptions.purchase(
        account_id, body.plan_code, body.payment_id
    )
    return SubscriptionChangeResponse(
        subscription=SubscriptionResponse.from_domain(subscription),
        balance=balance,
    )
