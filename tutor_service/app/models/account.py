"""계정(잔액) 도메인 모델."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class AccountRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Account(BaseModel):
    """인증된 사용자 1명당 1개의 계정.

    balance 는 항상 0 이상이며, 차감/정산/지급은 원장 레포지토리를 통해서만 바뀐다.
    """

    id: str | None = None
    account_id: str  # Identity Provider 가 발급한 불투명 사용자 ID
    email: str | None = None
    balance: int
    lifetime_consumed: int = 0  # committed 사용 이벤트의 actual_cost 합계
    role: AccountRole = AccountRole.USER
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_admin(self) -> bool:
        return self.role is AccountRole.ADMIN
