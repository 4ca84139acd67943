from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict

from confluent_kafka import Producer

from .config import KafkaProducerConfig, load_producer_config
from .core import Event

logger = logging.getLogger(__name__)

# 종료 시 남은 메시지를 기다리는 최대 시간(초)
FLUSH_TIMEOUT_SECONDS = 5.0


class KafkaEventBus:
    """Kafka 기반 이벤트 발행기.

    원장 서비스는 잔액 변경 알림만 발행하므로 consumer 측 구현은 두지 않는다.
    발행 실패는 delivery callback 에서 로그로만 남기고 호출자에게 전파하지 않는다.
    """

    def __init__(self, config: KafkaProducerConfig) -> None:
        self._producer = Producer(config.to_producer_conf())
        self._config = config

    def close(self) -> None:
        remaining = self._producer.flush(FLUSH_TIMEOUT_SECONDS)
        if remaining:
            logger.warning("%d kafka messages were not delivered before shutdown", remaining)

    def publish(self, topic: str, event: Event) -> None:
        payload = json.dumps(asdict(event), ensure_ascii=False).encode("utf-8")

        def _delivery_callback(err, msg) -> None:  # type: ignore[no-untyped-def]
            if err is not None:
                logger.error("failed to deliver message to %s: %s", msg.topic(), err)

        self._producer.produce(
            topic=topic,
            value=payload,
            key=event.id.encode("utf-8"),
            callback=_delivery_callback,
        )
        self._producer.poll(0)


_bus: KafkaEventBus | None = None
_bus_lock = threading.Lock()


def get_kafka_event_bus() -> KafkaEventBus:
    """프로세스 전역 KafkaEventBus 싱글톤을 반환한다."""

    global _bus

    if _bus is not None:
        return _bus

    with _bus_lock:
        if _bus is None:
            _bus = KafkaEventBus(load_producer_config())
    return _bus


def close_kafka_event_bus() -> None:
    global _bus

    with _bus_lock:
        if _bus is not None:
            _bus.close()
            _bus = None
