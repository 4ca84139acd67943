"""사용 이벤트(UsageEvent) 도메인 모델.

AI 도구 호출 1회당 1개가 생성된다. pending 으로 생성되어 committed / refunded / failed
중 하나의 종료 상태로 한 번만 전이하고, 종료 후에는 변경되지 않는다.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class OperationKind(str, Enum):
    TEXT_QUESTION = "text_question"
    IMAGE_QUESTION = "image_question"
    AUDIO_SUMMARY = "audio_summary"
    MIND_MAP = "mind_map"
    CHAT_TURN = "chat_turn"
    RESEARCH_PAPER = "research_paper"
    TEXT_EDITING = "text_editing"
    BOOK_CHAPTER = "book_chapter"

    @classmethod
    def from_slug(cls, value: str) -> "OperationKind":
        """URL 경로의 'text-question' 형태와 'text_question' 형태를 모두 받는다."""
        normalized = value.strip().lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"unsupported operation kind: {value}") from exc

    @property
    def is_variable_cost(self) -> bool:
        return self is OperationKind.CHAT_TURN


class UsageStatus(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    REFUNDED = "refunded"  # AI 호출 실패로 즉시 환불
    FAILED = "failed"  # 정산되지 못한 채 방치되어 스위퍼가 환불

    @property
    def is_terminal(self) -> bool:
        return self is not UsageStatus.PENDING


class AttachmentRef(BaseModel):
    """이미지/오디오 입력의 참조 정보. 원본 바이트는 저장하지 않는다."""

    mime_type: str
    size_bytes: int
    sha256: str


class UsageEvent(BaseModel):
    id: str | None = None
    account_id: str
    kind: OperationKind
    status: UsageStatus = UsageStatus.PENDING
    declared_cost: int  # 차감 시점에 보류(hold)한 양
    actual_cost: int | None = None  # 최종 청구액 (pending 동안 None, 환불 시 0)
    measured_cost: int | None = None  # 어댑터가 측정한 비용 (잔액 부족으로 잘릴 수 있음)
    session_id: str | None = None
    input_text: str = ""
    attachment: AttachmentRef | None = None
    output: str | None = None
    model: str | None = None
    error_code: str | None = None
    created_at: datetime
    resolved_at: datetime | None = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Settlement(BaseModel):
    """정산(commit/환불) 결과.

    changed=False 면 이미 종료 상태였던 이벤트에 대한 재정산 요청(no-op)이다.
    """

    event: UsageEvent
    balance: int
    changed: bool = True


def resolve_commit_charge(held: int, measured: int, available: int) -> tuple[int, int]:
    """정산 시 최종 청구액과 잔액 변화량을 계산한다.

    held 는 차감 시점에 이미 빠진 양, available 은 정산 직전 잔액이다.
    측정 비용이 보류액보다 크면 차액을 추가로 빼되 잔액을 넘지 않게 자르고,
    작으면 차액을 돌려준다. 반환값은 (actual_cost, balance_delta).
    """
    measured = max(measured, 0)
    if measured > held:
        extra = min(measured - held, max(available, 0))
        return held + extra, -extra
    return measured, held - measured
