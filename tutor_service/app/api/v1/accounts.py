from __future__ import annotations

from fastapi import APIRouter

from ...exceptions import InvalidPayloadError
from ...models.usage import OperationKind
from ..deps import ContainerDep
from ..schemas.accounts import (
    AccountResponse,
    AuthorizeResponse,
    EnsureAccountRequest,
    EnsureAccountResponse,
)

router = APIRouter()


@router.post("/{account_id}", response_model=EnsureAccountResponse, summary="계정 생성 (첫 인증)")
def ensure_account(
    account_id: str,
    container: ContainerDep,
    body: EnsureAccountRequest | None = None,
) -> EnsureAccountResponse:
    email = body.email if body else None
    account, created = container.accounts.ensure_account(account_id, email)
    return EnsureAccountResponse(
        account=AccountResponse.from_domain(account),
        created=created,
    )


@router.get("/{account_id}", response_model=AccountResponse, summary="잔액 조회")
def get_account(account_id: str, container: ContainerDep) -> AccountResponse:
    return AccountResponse.from_domain(container.accounts.get(account_id))


@router.get(
    "/{account_id}/authorize",
    response_model=AuthorizeResponse,
    summary="도구 실행 전 잔액 점검",
)
def authorize(account_id: str, kind: str, container: ContainerDep) -> AuthorizeResponse:
    try:
        operation = OperationKind.from_slug(kind)
    except ValueError as exc:
        raise InvalidPayloadError(str(exc)) from exc

    declared_cost = container.pricing.declared_cost(operation)
    result = container.authorization.authorize(account_id, declared_cost)
    return AuthorizeResponse(
        account_id=account_id,
        kind=operation.value,
        declared_cost=result.declared_cost,
        balance=result.balance,
        authorized=result.authorized,
        shortfall=result.shortfall,
    )
