"""AI 도구 실행 API.

요청: (account_id, kind, payload) -> 응답: 출력 또는 타입이 있는 오류 + 남은 잔액.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends

from ...exceptions import InvalidPayloadError
from ...models.usage import OperationKind
from ...services.tool_service import ToolService
from ..deps import get_tool_service
from ..schemas.tools import ToolResponse

router = APIRouter()


@router.post("/{account_id}/{kind}", response_model=ToolResponse, summary="AI 도구 실행")
def run_tool(
    account_id: str,
    kind: str,
    tools: Annotated[ToolService, Depends(get_tool_service)],
    payload: dict[str, Any] = Body(...),
) -> ToolResponse:
    try:
        operation = OperationKind.from_slug(kind)
    except ValueError as exc:
        raise InvalidPayloadError(str(exc)) from exc

    outcome = tools.run(account_id, operation, payload)
    return ToolResponse.from_outcome(outcome)
