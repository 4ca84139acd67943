"""관리자 API. 호출자는 X-Account-Id 헤더로 식별하며 admin 역할이어야 한다."""

from __future__ import annotations

from fastapi import APIRouter

from common.schemas.pagination import PaginatedResponse

from ...models.usage import OperationKind, UsageStatus
from ..deps import AdminDep, ContainerDep
from ..schemas.accounts import AccountResponse
from ..schemas.admin import (
    AdjustCreditsRequest,
    BalanceResponse,
    GrantSubscriptionRequest,
    SetRoleRequest,
)
from ..schemas.subscriptions import SubscriptionChangeResponse, SubscriptionResponse
from ..schemas.usage import UsageEventResponse

router = APIRouter()


@router.get(
    "/accounts",
    response_model=PaginatedResponse[AccountResponse],
    summary="계정 목록",
)
def list_accounts(
    container: ContainerDep,
    admin: AdminDep,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse[AccountResponse]:
    result = container.accounts.list(page, page_size)
    return PaginatedResponse(
        items=[AccountResponse.from_domain(account) for account in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.post(
    "/accounts/{account_id}/credits",
    response_model=BalanceResponse,
    summary="크레딧 조정",
)
def adjust_credits(
    account_id: str,
    body: AdjustCreditsRequest,
    container: ContainerDep,
    admin: AdminDep,
) -> BalanceResponse:
    balance = container.accounts.adjust_credits(
        account_id, body.amount, body.reason, admin.account_id
    )
    return BalanceResponse(account_id=account_id, balance=balance)


@router.put(
    "/accounts/{account_id}/role",
    response_model=AccountResponse,
    summary="역할 변경",
)
def set_role(
    account_id: str,
    body: SetRoleRequest,
    container: ContainerDep,
    admin: AdminDep,
) -> AccountResponse:
    return AccountResponse.from_domain(container.accounts.set_role(account_id, body.role))


@router.delete("/accounts/{account_id}", summary="계정 삭제")
def delete_account(
    account_id: str,
    container: ContainerDep,
    admin: AdminDep,
) -> dict[str, str]:
    container.accounts.delete(account_id)
    return {"message": "account_deleted"}


@router.post(
    "/accounts/{account_id}/subscriptions",
    response_model=SubscriptionChangeResponse,
    summary="구독 수동 지급",
)
def grant_subscription(
    account_id: str,
    body: GrantSubscriptionRequest,
    container: ContainerDep,
    admin: AdminDep,
) -> SubscriptionChangeResponse:
    subscription, balance = container.subscriptions.grant(
        account_id,
        plan_label=body.plan_label,
        credits=body.credits,
        price=body.price,
        valid_days=body.valid_days,
    )
    return SubscriptionChangeResponse(
        subscription=SubscriptionResponse.from_domain(subscription),
        balance=balance,
    )


@router.post(
    "/subscriptions/{subscription_id}/cancel",
    response_model=SubscriptionChangeResponse,
    summary="구독 취소",
)
def cancel_subscription(
    subscription_id: str,
    container: ContainerDep,
    admin: AdminDep,
) -> SubscriptionChangeResponse:
    subscription, balance = container.subscriptions.cancel(subscription_id)
    return SubscriptionChangeResponse(
        subscription=SubscriptionResponse.from_domain(subscription),
        balance=balance,
    )


@router.get(
    "/usage",
    response_model=PaginatedResponse[UsageEventResponse],
    summary="전체 사용 이력",
)
def list_usage(
    container: ContainerDep,
    admin: AdminDep,
    page: int = 1,
    page_size: int = 20,
    kind: OperationKind | None = None,
    status: UsageStatus | None = None,
) -> PaginatedResponse[UsageEventResponse]:
    result = container.history.list_all_events(page, page_size, kind=kind, status=status)
    return PaginatedResponse(
        items=[UsageEventResponse.from_domain(event) for event in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )
