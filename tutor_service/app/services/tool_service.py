"""AI 도구 실행.

8개 도구가 모두 같은 순서를 따른다.

    가격 산정 -> 사전 승인 -> 차감(metered) -> 프롬프트 -> AI 호출 -> (구조화 파싱) -> 정산

AI 호출이 실패하거나 중간에 예외가 나면 metered 스코프가 보류액을 환불하므로
실패한 요청 뒤의 잔액은 요청 전과 같다.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from ..config import AppConfig
from ..exceptions import QuizoraError
from ..models.tools import (
    AudioSummaryPayload,
    BookChapterPayload,
    ChatTurnPayload,
    ImageQuestionPayload,
    InlineMedia,
    MindMapPayload,
    parse_payload,
)
from ..models.usage import OperationKind, UsageEvent
from .ai_adapter import AIAdapter, AIRequest, HistoryTurn
from .authorization_service import AuthorizationService
from .history_service import HistoryService
from .ledger_service import LedgerService, MeteredCall
from .pricing import PricingService
from .prompts import build_prompt
from .structured import parse_mind_map, parse_outline


logger = logging.getLogger(__name__)

# 사용 이력에 남길 입력 텍스트 상한
MAX_STORED_INPUT_CHARS = 4000


@dataclass(slots=True)
class ToolOutcome:
    event: UsageEvent
    output: str
    structured: dict | None
    remaining_balance: int
    fallback: bool = False


def _input_text(kind: OperationKind, payload: BaseModel) -> str:
    """이력 화면에 보여줄 사용자 입력 요약. 미디어 본문은 넣지 않는다."""
    if isinstance(payload, ChatTurnPayload):
        text = payload.message
    elif isinstance(payload, ImageQuestionPayload):
        text = payload.question
    elif isinstance(payload, AudioSummaryPayload):
        text = "audio summary"
    elif isinstance(payload, MindMapPayload):
        text = payload.topic
    elif isinstance(payload, BookChapterPayload):
        text = payload.book_title
        if payload.action == "chapter":
            text = f"{payload.book_title} / {payload.chapter_title}"
    else:
        data = payload.model_dump()
        text = str(next(iter(data.values()), ""))
    return text[:MAX_STORED_INPUT_CHARS]


class ToolService:
    def __init__(
        self,
        config: AppConfig,
        pricing: PricingService,
        authorization: AuthorizationService,
        ledger: LedgerService,
        history: HistoryService,
        adapter: AIAdapter,
    ) -> None:
        self._config = config
        self._pricing = pricing
        self._authorization = authorization
        self._ledger = ledger
        self._history = history
        self._adapter = adapter

    def run(
        self,
        account_id: str,
        kind: OperationKind,
        raw_payload: dict[str, Any] | BaseModel,
    ) -> ToolOutcome:
        payload = parse_payload(kind, raw_payload)
        media: InlineMedia | None = None
        if isinstance(payload, (ImageQuestionPayload, AudioSummaryPayload)):
            media = payload.media()

        declared_cost = self._pricing.declared_cost(kind, payload)
        call: MeteredCall | None = None
        try:
            self._authorization.require(account_id, declared_cost)
            request, session_id = self._build_request(
                account_id, kind, payload, declared_cost, media
            )
            with self._ledger.metered(
                account_id,
                kind,
                declared_cost,
                session_id=session_id,
                input_text=_input_text(kind, payload),
                attachment=media.to_attachment() if media else None,
            ) as call:
                result = self._adapter.invoke(request)
                structured, fallback = self._parse_structured(kind, payload, result.output)
                settlement = call.commit(result.output, result.model, result.measured_cost)
        except QuizoraError as exc:
            exc.remaining_balance = self._balance_after_failure(account_id, call)
            raise

        if fallback:
            logger.info(
                "structured output replaced with fallback",
                extra={"account_id": account_id, "event_id": settlement.event.id, "kind": kind.value},
            )

        return ToolOutcome(
            event=settlement.event,
            output=result.output,
            structured=structured,
            remaining_balance=settlement.balance,
            fallback=fallback,
        )

    def _build_request(
        self,
        account_id: str,
        kind: OperationKind,
        payload: BaseModel,
        declared_cost: int,
        media: InlineMedia | None,
    ) -> tuple[AIRequest, str | None]:
        session_id: str | None = None
        history: list[HistoryTurn] = []
        if isinstance(payload, ChatTurnPayload):
            if payload.session_id:
                session_id = payload.session_id
                history = self._history.recent_history(
                    account_id, session_id, self._config.chat.history_turns
                )
            else:
                session_id = uuid.uuid4().hex

        system_prompt, user_prompt = build_prompt(kind, payload)
        request = AIRequest(
            kind=kind,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            declared_cost=declared_cost,
            history=history,
            media=media,
        )
        return request, session_id

    def _balance_after_failure(
        self, account_id: str, call: MeteredCall | None
    ) -> int | None:
        """실패한 호출 뒤의 잔액. 환불이 저장됐으면 그 결과를, 아니면 계정을 다시 읽는다."""
        if call is not None and call.settlement is not None:
            return call.settlement.balance
        return self._ledger.current_balance(account_id)

    @staticmethod
    def _parse_structured(
        kind: OperationKind, payload: BaseModel, output: str
    ) -> tuple[dict | None, bool]:
        if isinstance(payload, MindMapPayload):
            parsed = parse_mind_map(output, payload.topic)
            return parsed.data, parsed.fallback
        if isinstance(payload, BookChapterPayload) and payload.action == "outline":
            parsed = parse_outline(output, payload.topic, payload.page_count)
            return parsed.data, parsed.fallback
        return None, False
