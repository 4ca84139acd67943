"""방치된 pending 사용 이벤트 정리.

프로세스가 AI 호출 도중 죽거나 환불 저장에 실패하면 이벤트가 pending 으로 남는다.
pending_timeout 보다 오래된 이벤트를 failed 로 바꾸고 보류액을 돌려준다.
만료 시각이 지난 구독도 함께 정리한다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from common.types.datetime import utc_now

from ..config import SweeperConfig
from ..exceptions import QuizoraError
from ..repositories.interfaces import UsageEventRepositoryInterface
from .reconciliation import Reconciler
from .subscription_service import SubscriptionService


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepReport:
    expired_events: list[str] = field(default_factory=list)
    failed_events: list[str] = field(default_factory=list)
    expired_subscriptions: int = 0


class SweepService:
    def __init__(
        self,
        config: SweeperConfig,
        event_repo: UsageEventRepositoryInterface,
        reconciler: Reconciler,
        subscriptions: SubscriptionService,
    ) -> None:
        self._config = config
        self._event_repo = event_repo
        self._reconciler = reconciler
        self._subscriptions = subscriptions

    def run_once(self) -> SweepReport:
        report = SweepReport()
        cutoff = utc_now() - timedelta(seconds=self._config.pending_timeout_seconds)

        for event in self._event_repo.find_stale_pending(cutoff, self._config.batch_size):
            assert event.id is not None
            try:
                settlement = self._reconciler.expire(event.id)
            except QuizoraError:
                logger.exception(
                    "failed to expire pending usage event",
                    extra={"account_id": event.account_id, "event_id": event.id},
                )
                report.failed_events.append(event.id)
                continue
            if settlement.changed:
                report.expired_events.append(event.id)

        report.expired_subscriptions = len(self._subscriptions.expire_due())

        if report.expired_events or report.failed_events or report.expired_subscriptions:
            logger.info(
                "sweep finished (expired_events=%d failed=%d expired_subscriptions=%d)",
                len(report.expired_events),
                len(report.failed_events),
                report.expired_subscriptions,
            )
        return report
