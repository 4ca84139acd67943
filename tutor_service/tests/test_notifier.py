from __future__ import annotations

import pytest

from common.eventbus.config import load_producer_config
from common.eventbus.core import Event
from common.eventbus.topics import TOPIC_LEDGER
from common.events.ledger import BalanceChangedEvent, BalanceChangeReason, LedgerEventType
from tutor_service.app.services.notifier import KafkaBalanceNotifier


class InMemoryPublisher:
    def __init__(self, fail: bool = False) -> None:
        self.published: list[tuple[str, Event]] = []
        self._fail = fail

    def publish(self, topic: str, event: Event) -> None:
        if self._fail:
            raise RuntimeError("broker down")
        self.published.append((topic, event))

    def close(self) -> None:
        return None


def test_balance_change_is_published_to_ledger_topic() -> None:
    publisher = InMemoryPublisher()
    notifier = KafkaBalanceNotifier(lambda: publisher)

    notifier.balance_changed("user-001", 95, BalanceChangeReason.DEDUCTED, "event-1")

    (topic, event), = publisher.published
    assert topic == TOPIC_LEDGER.base
    decoded = BalanceChangedEvent.from_dict(event.payload)
    assert decoded.id == event.id
    assert decoded.type == LedgerEventType.BALANCE_CHANGED
    assert decoded.account_id == "user-001"
    assert decoded.balance == 95
    assert decoded.reason == "deducted"
    assert decoded.usage_event_id == "event-1"


def test_publish_failure_is_swallowed() -> None:
    notifier = KafkaBalanceNotifier(lambda: InMemoryPublisher(fail=True))

    notifier.balance_changed("user-001", 95, BalanceChangeReason.REFUNDED)


def test_producer_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
    monkeypatch.setenv("KAFKA_ACKS", "all")
    monkeypatch.setenv("KAFKA_MESSAGE_MAX_BYTES", "0")
    monkeypatch.delenv("KAFKA_CLIENT_ID", raising=False)

    conf = load_producer_config().to_producer_conf()

    assert conf == {"bootstrap.servers": "kafka:9092", "client.id": "tutor-service", "acks": "all"}


@pytest.mark.parametrize(
    ("name", "value"),
    [("KAFKA_ACKS", "2"), ("KAFKA_MESSAGE_MAX_BYTES", "big")],
)
def test_producer_config_rejects_invalid_values(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str
) -> None:
    monkeypatch.setenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
    monkeypatch.setenv(name, value)

    with pytest.raises(RuntimeError):
        load_producer_config()


def test_producer_config_requires_brokers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("KAFKA_BOOTSTRAP_SERVERS", raising=False)

    with pytest.raises(RuntimeError):
        load_producer_config()
