from __future__ import annotations

from fastapi import APIRouter

from common.schemas.pagination import PaginatedResponse

from ...models.conversation import UsageStats
from ...models.usage import OperationKind, UsageStatus
from ..deps import ContainerDep
from ..schemas.history import (
    ChatMessageResponse,
    ConversationThreadResponse,
    ThreadSummaryResponse,
)
from ..schemas.usage import UsageEventResponse

router = APIRouter()


@router.get(
    "/{account_id}/events",
    response_model=PaginatedResponse[UsageEventResponse],
    summary="사용 이력 (최신순)",
)
def list_events(
    account_id: str,
    container: ContainerDep,
    page: int = 1,
    page_size: int = 20,
    kind: OperationKind | None = None,
    status: UsageStatus | None = None,
    session_id: str | None = None,
) -> PaginatedResponse[UsageEventResponse]:
    result = container.history.list_events(
        account_id, page, page_size, kind=kind, status=status, session_id=session_id
    )
    return PaginatedResponse(
        items=[UsageEventResponse.from_domain(event) for event in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.get(
    "/{account_id}/threads",
    response_model=PaginatedResponse[ThreadSummaryResponse],
    summary="대화 스레드 목록",
)
def list_threads(
    account_id: str,
    container: ContainerDep,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse[ThreadSummaryResponse]:
    result = container.history.list_threads(account_id, page, page_size)
    return PaginatedResponse(
        items=[ThreadSummaryResponse.from_domain(item) for item in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.get(
    "/{account_id}/threads/{session_id}",
    response_model=ConversationThreadResponse,
    summary="대화 스레드 상세",
)
def get_thread(
    account_id: str,
    session_id: str,
    container: ContainerDep,
    page: int = 1,
    page_size: int = 20,
) -> ConversationThreadResponse:
    thread = container.history.get_thread(account_id, session_id, page, page_size)
    return ConversationThreadResponse(
        summary=ThreadSummaryResponse.from_domain(thread.summary),
        messages=[ChatMessageResponse(**m.model_dump()) for m in thread.messages],
        page=thread.page,
        page_size=thread.page_size,
    )


@router.get("/{account_id}/stats", response_model=UsageStats, summary="사용 통계")
def get_stats(account_id: str, container: ContainerDep) -> UsageStats:
    return container.history.get_stats(account_id)
