from __future__ import annotations

from pydantic import BaseModel

from ...services.tool_service import ToolOutcome


class ToolResponse(BaseModel):
    """도구 실행 결과와 남은 잔액."""

    event_id: str | None
    kind: str
    output: str
    structured: dict | None = None
    fallback: bool = False
    credits_charged: int
    remaining_balance: int
    session_id: str | None = None
    model: str | None = None

    @classmethod
    def from_outcome(cls, outcome: ToolOutcome) -> "ToolResponse":
        event = outcome.event
        return cls(
            event_id=event.id,
            kind=event.kind.value,
            output=outcome.output,
            structured=outcome.structured,
            fallback=outcome.fallback,
            credits_charged=event.actual_cost or 0,
            remaining_balance=outcome.remaining_balance,
            session_id=event.session_id,
            model=event.model,
        )
