from __future__ import annotations

from pydantic import BaseModel

from common.types.datetime import UtcDateTime

from ...models.conversation import ChatRole, ThreadSummary


class ThreadSummaryResponse(BaseModel):
    session_id: str
    title: str
    turn_count: int
    total_credits: int
    started_at: UtcDateTime
    last_activity_at: UtcDateTime

    @classmethod
    def from_domain(cls, summary: ThreadSummary) -> "ThreadSummaryResponse":
        return cls(**summary.model_dump())


class ChatMessageResponse(BaseModel):
    role: ChatRole
    content: str
    credits_used: int
    usage_event_id: str | None
    created_at: UtcDateTime


class ConversationThreadResponse(BaseModel):
    summary: ThreadSummaryResponse
    messages: list[ChatMessageResponse]
    page: int
    page_size: int
