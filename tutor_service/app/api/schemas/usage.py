from __future__ import annotations

from pydantic import BaseModel

from common.types.datetime import OptionalUtcDateTime, UtcDateTime

from ...models.usage import AttachmentRef, UsageEvent


class UsageEventResponse(BaseModel):
    id: str | None
    account_id: str
    kind: str
    status: str
    declared_cost: int
    actual_cost: int | None
    session_id: str | None
    input_text: str
    attachment: AttachmentRef | None
    output: str | None
    model: str | None
    error_code: str | None
    created_at: UtcDateTime
    resolved_at: OptionalUtcDateTime = None

    @classmethod
    def from_domain(cls, event: UsageEvent) -> "UsageEventResponse":
        return cls(
            id=event.id,
            account_id=event.account_id,
            kind=event.kind.value,
            status=event.status.value,
            declared_cost=event.declared_cost,
            actual_cost=event.actual_cost,
            session_id=event.session_id,
            input_text=event.input_text,
            attachment=event.attachment,
            output=event.output,
            model=event.model,
            error_code=event.error_code,
            created_at=event.created_at,
            resolved_at=event.resolved_at,
        )
