from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from ..models.account import Account
from ..services.container import ServiceContainer
from ..services.tool_service import ToolService


ACCOUNT_ID_HEADER = "X-Account-Id"


def get_container(request: Request) -> ServiceContainer:
    """앱 시작 시 lifespan 에서 만든 서비스 컨테이너."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "service_busy", "message": "service not initialized"},
        )
    return container


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


def get_tool_service(container: ContainerDep) -> ToolService:
    if container.tools is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "service_busy", "message": "AI tools are not configured"},
        )
    return container.tools


def require_admin(
    container: ContainerDep,
    x_account_id: Annotated[str | None, Header(alias=ACCOUNT_ID_HEADER)] = None,
) -> Account:
    """X-Account-Id 헤더의 계정이 admin 역할인지 확인한다."""
    return container.accounts.require_admin(x_account_id)


AdminDep = Annotated[Account, Depends(require_admin)]
