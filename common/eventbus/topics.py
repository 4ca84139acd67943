from __future__ import annotations

from .core import Topic


# 잔액 변경 알림 (클라이언트 캐시 무효화 신호)
TOPIC_LEDGER = Topic("quizora.ledger")
