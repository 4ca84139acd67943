"""잔액 변경 알림 발행.

클라이언트는 폴링 대신 이 신호로 잔액 캐시를 무효화한다. 발행은 best-effort 이며
실패해도 원장 결과는 바뀌지 않는다.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict
from typing import Callable, Protocol

from common.eventbus.core import EventPublisher
from common.eventbus.helpers import new_json_event
from common.eventbus.kafka import get_kafka_event_bus
from common.eventbus.topics import TOPIC_LEDGER
from common.events.ledger import BalanceChangedEvent, LedgerEventType
from common.types.datetime import utc_now


logger = logging.getLogger(__name__)

EVENT_SOURCE = "tutor-service"


class BalanceNotifier(Protocol):
    def balance_changed(
        self,
        account_id: str,
        balance: int,
        reason: str,
        usage_event_id: str | None = None,
    ) -> None:  # pragma: no cover - Protocol
        ...


class NullBalanceNotifier:
    """알림을 보내지 않는 구현 (Kafka 미설정 환경, 테스트)."""

    def balance_changed(
        self,
        account_id: str,
        balance: int,
        reason: str,
        usage_event_id: str | None = None,
    ) -> None:
        return None


class KafkaBalanceNotifier:
    """ledger.balance_changed 이벤트를 quizora.ledger 토픽으로 발행한다."""

    def __init__(
        self,
        publisher_factory: Callable[[], EventPublisher] = get_kafka_event_bus,
    ) -> None:
        self._publisher_factory = publisher_factory

    def balance_changed(
        self,
        account_id: str,
        balance: int,
        reason: str,
        usage_event_id: str | None = None,
    ) -> None:
        event_id = str(uuid.uuid4())
        event = BalanceChangedEvent(
            id=event_id,
            type=LedgerEventType.BALANCE_CHANGED,
            timestamp=utc_now().isoformat(),
            source=EVENT_SOURCE,
            version="1.0",
            account_id=account_id,
            balance=balance,
            reason=reason,
            usage_event_id=usage_event_id,
        )
        wrapped = new_json_event(payload=asdict(event), event_id=event_id)
        try:
            self._publisher_factory().publish(TOPIC_LEDGER.base, wrapped)
        except Exception:  # noqa: BLE001
            logger.exception(
                "failed to publish balance change",
                extra={"account_id": account_id, "event_id": usage_event_id},
            )
