from __future__ import annotations

import os
from dataclasses import dataclass


KAFKA_BOOTSTRAP_SERVERS = "KAFKA_BOOTSTRAP_SERVERS"
KAFKA_MESSAGE_MAX_BYTES = "KAFKA_MESSAGE_MAX_BYTES"
KAFKA_CLIENT_ID = "KAFKA_CLIENT_ID"
KAFKA_ACKS = "KAFKA_ACKS"

_VALID_ACKS = {"0", "1", "all"}


@dataclass(frozen=True, slots=True)
class KafkaProducerConfig:
    """잔액 알림 발행용 producer 설정."""

    brokers: str
    client_id: str = "tutor-service"
    acks: str = "1"
    message_max_bytes: int | None = None

    def to_producer_conf(self) -> dict[str, object]:
        conf: dict[str, object] = {
            "bootstrap.servers": self.brokers,
            "client.id": self.client_id,
            "acks": self.acks,
        }
        if self.message_max_bytes:
            conf["message.max.bytes"] = self.message_max_bytes
        return conf


def _message_max_bytes() -> int | None:
    """비어 있거나 0 이하면 라이브러리 기본값(None). 정수가 아니면 RuntimeError."""

    raw_value = os.getenv(KAFKA_MESSAGE_MAX_BYTES, "").strip()
    if not raw_value:
        return None
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise RuntimeError(
            f"{KAFKA_MESSAGE_MAX_BYTES} must be an integer value, got: {raw_value!r}"
        ) from exc
    return value if value > 0 else None


def load_producer_config() -> KafkaProducerConfig:
    brokers = os.getenv(KAFKA_BOOTSTRAP_SERVERS)
    if not brokers:
        raise RuntimeError(f"{KAFKA_BOOTSTRAP_SERVERS} environment variable is required")

    acks = (os.getenv(KAFKA_ACKS) or "1").strip().lower()
    if acks not in _VALID_ACKS:
        raise RuntimeError(f"{KAFKA_ACKS} must be one of 0, 1, all; got: {acks!r}")

    return KafkaProducerConfig(
        brokers=brokers,
        client_id=os.getenv(KAFKA_CLIENT_ID) or "tutor-service",
        acks=acks,
        message_max_bytes=_message_max_bytes(),
    )
