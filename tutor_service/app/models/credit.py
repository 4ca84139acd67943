"""크레딧 잔액 변동 로그 및 승인 결과 모델.

사용 이벤트가 아닌 잔액 변동(가입 지급, 구독 지급, 관리자 조정, 구독 취소 회수)은
credit_transactions 에 한 건씩 남긴다.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class CreditTransactionType(str, Enum):
    SIGNUP = "signup"
    SUBSCRIPTION_GRANT = "subscription_grant"
    ADMIN_ADJUST = "admin_adjust"
    RECLAIM = "reclaim"


class CreditTransaction(BaseModel):
    """크레딧 트랜잭션 로그 도메인 모델."""

    id: str | None = None
    account_id: str
    type: CreditTransactionType
    amount: int  # 지급은 양수, 회수/차감은 음수
    balance_after: int | None = None
    reason: str
    metadata: dict | None = None
    created_at: datetime
    updated_at: datetime


class AuthorizationResult(BaseModel):
    """사전 승인 결과. authorized=False 면 shortfall 만큼 부족하다."""

    account_id: str
    declared_cost: int
    balance: int
    authorized: bool
    shortfall: int = 0
