"""대화 이력 조회용 투영 모델.

ConversationThread 는 별도로 저장되지 않는다. 같은 session_id 를 가진 chat_turn
사용 이벤트를 조회 시점에 묶어서 만든다.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ChatRole(str, Enum):
    """채팅 메시지 역할."""

    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    role: ChatRole
    content: str
    credits_used: int = 0
    usage_event_id: Optional[str] = None
    created_at: datetime


class ThreadSummary(BaseModel):
    session_id: str
    title: str
    turn_count: int
    total_credits: int
    started_at: datetime
    last_activity_at: datetime


class ConversationThread(BaseModel):
    """스레드 요약 + 요청한 페이지의 메시지 (턴 하나가 user/assistant 메시지 2개)."""

    summary: ThreadSummary
    messages: List[ChatMessage] = Field(default_factory=list)
    page: int = 1
    page_size: int = 20


class KindStats(BaseModel):
    requests: int = 0
    credits: int = 0


class UsageStats(BaseModel):
    account_id: str
    total_requests: int = 0
    total_credits: int = 0
    by_kind: dict[str, KindStats] = Field(default_factory=dict)


DEFAULT_THREAD_TITLE = "New Chat"


def make_thread_title(first_message: str | None) -> str:
    """첫 user 메시지 30자로 스레드 제목을 만든다."""
    content = (first_message or "").strip()
    if not content:
        return DEFAULT_THREAD_TITLE
    return content[:30] + "..." if len(content) > 30 else content
