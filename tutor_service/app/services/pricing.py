"""도구별 가격 산정.

고정 비용 도구는 측정 비용이 선언 비용과 같고, 채팅은 답변 길이로 측정 비용이 정해진다.
"""

from __future__ import annotations

import math

from pydantic import BaseModel

from ..config import PricingConfig
from ..models.tools import BookChapterPayload
from ..models.usage import OperationKind


class PricingService:
    def __init__(self, config: PricingConfig) -> None:
        self._config = config

    def declared_cost(self, kind: OperationKind, payload: BaseModel | None = None) -> int:
        """차감 시점에 보류할 양. 채팅은 최소 비용을 보류한다."""
        if kind is OperationKind.BOOK_CHAPTER and isinstance(payload, BookChapterPayload):
            if payload.action == "outline":
                return self._config.book_outline_cost
            return payload.pages * self._config.book_credits_per_page
        if kind is OperationKind.CHAT_TURN:
            return self._config.chat.min_credits
        return self._config.costs[kind]

    def chat_cost(self, answer: str) -> int:
        chat = self._config.chat
        raw = math.ceil(len(answer) / chat.chars_per_credit)
        return min(max(raw, chat.min_credits), chat.max_credits)

    def measured_cost(self, kind: OperationKind, declared_cost: int, output: str) -> int:
        if kind.is_variable_cost:
            return self.chat_cost(output)
        return declared_cost
