"""History Projection.

사용 이벤트를 최신순 목록, 대화 스레드, 사용 통계로 보여준다. 스레드는 저장하지 않고
같은 session_id 의 committed chat_turn 이벤트를 조회 시점에 묶는다.
"""

from __future__ import annotations

from common.schemas.pagination import PaginatedResponse, normalize_paging

from ..exceptions import ConversationNotFoundError
from ..models.conversation import (
    ChatMessage,
    ChatRole,
    ConversationThread,
    ThreadSummary,
    UsageStats,
)
from ..models.usage import OperationKind, UsageEvent, UsageStatus
from ..repositories.interfaces import UsageEventRepositoryInterface
from .ai_adapter import HistoryTurn


def turn_to_messages(event: UsageEvent) -> list[ChatMessage]:
    """chat_turn 이벤트 하나를 user/assistant 메시지 쌍으로 펼친다."""
    resolved_at = event.resolved_at or event.created_at
    return [
        ChatMessage(
            role=ChatRole.USER,
            content=event.input_text,
            usage_event_id=event.id,
            created_at=event.created_at,
        ),
        ChatMessage(
            role=ChatRole.ASSISTANT,
            content=event.output or "",
            credits_used=event.actual_cost or 0,
            usage_event_id=event.id,
            created_at=resolved_at,
        ),
    ]


class HistoryService:
    def __init__(self, event_repo: UsageEventRepositoryInterface) -> None:
        self._event_repo = event_repo

    def list_events(
        self,
        account_id: str,
        page: int = 1,
        page_size: int = 20,
        kind: OperationKind | None = None,
        status: UsageStatus | None = None,
        session_id: str | None = None,
    ) -> PaginatedResponse[UsageEvent]:
        """계정의 사용 이벤트 (최신순).

        session_id 를 주면 그 대화의 이벤트만 상태와 무관하게 돌려준다.
        """
        page, page_size = normalize_paging(page, page_size)
        items, total = self._event_repo.list_by_account(
            account_id, page, page_size, kind=kind, status=status, session_id=session_id
        )
        return PaginatedResponse(items=items, total=total, page=page, page_size=page_size)

    def list_all_events(
        self,
        page: int = 1,
        page_size: int = 20,
        kind: OperationKind | None = None,
        status: UsageStatus | None = None,
    ) -> PaginatedResponse[UsageEvent]:
        """관리자용 전체 사용 이력."""
        page, page_size = normalize_paging(page, page_size)
        items, total = self._event_repo.list_all(page, page_size, kind=kind, status=status)
        return PaginatedResponse(items=items, total=total, page=page, page_size=page_size)

    def list_threads(
        self, account_id: str, page: int = 1, page_size: int = 20
    ) -> PaginatedResponse[ThreadSummary]:
        page, page_size = normalize_paging(page, page_size)
        items, total = self._event_repo.list_threads(account_id, page, page_size)
        return PaginatedResponse(items=items, total=total, page=page, page_size=page_size)

    def get_thread(
        self,
        account_id: str,
        session_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> ConversationThread:
        summary = self._event_repo.thread_summary(account_id, session_id)
        if summary is None:
            raise ConversationNotFoundError(f"conversation not found: {session_id}")

        page, page_size = normalize_paging(page, page_size)
        turns, _ = self._event_repo.list_thread_turns(account_id, session_id, page, page_size)
        messages: list[ChatMessage] = []
        for turn in turns:
            messages.extend(turn_to_messages(turn))
        return ConversationThread(
            summary=summary,
            messages=messages,
            page=page,
            page_size=page_size,
        )

    def recent_history(
        self, account_id: str, session_id: str, turns: int
    ) -> list[HistoryTurn]:
        """채팅 프롬프트에 넣을 직전 대화 (오래된 순)."""
        history: list[HistoryTurn] = []
        for event in self._event_repo.recent_turns(account_id, session_id, turns):
            history.append(HistoryTurn(role=ChatRole.USER, content=event.input_text))
            history.append(HistoryTurn(role=ChatRole.ASSISTANT, content=event.output or ""))
        return history

    def get_stats(self, account_id: str) -> UsageStats:
        return self._event_repo.stats(account_id)
