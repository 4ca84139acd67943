from __future__ import annotations

import logging
import threading

from ..services.sweep_service import SweepService


logger = logging.getLogger(__name__)


_SWEEPER_THREAD: threading.Thread | None = None
_SWEEPER_STOP_EVENT: threading.Event | None = None


def _run_sweeper_loop(
    service: SweepService, interval: float, stop_event: threading.Event
) -> None:
    logger.info("pending sweeper thread started (interval=%.0f seconds)", interval)

    try:
        # 재시작 직후 남아 있는 pending 이벤트부터 정리한다.
        while True:
            try:
                service.run_once()
            except Exception:  # noqa: BLE001
                logger.exception("pending sweep failed")
            if stop_event.wait(interval):
                break
    finally:
        logger.info("pending sweeper thread stopped")


def start_pending_sweeper(service: SweepService, interval: float) -> None:
    """pending 이벤트 스위퍼 스레드를 시작한다.

    FastAPI lifespan 시작 시 호출된다.
    """

    global _SWEEPER_THREAD, _SWEEPER_STOP_EVENT

    if _SWEEPER_THREAD and _SWEEPER_THREAD.is_alive():
        return

    stop_event = threading.Event()
    thread = threading.Thread(
        target=_run_sweeper_loop,
        args=(service, interval, stop_event),
        name="pending-sweeper",
        daemon=True,
    )

    _SWEEPER_STOP_EVENT = stop_event
    _SWEEPER_THREAD = thread

    thread.start()
    logger.info("pending sweeper thread launched")


def stop_pending_sweeper() -> None:
    """스위퍼 스레드를 정지한다. FastAPI lifespan 종료 시 호출된다."""

    global _SWEEPER_THREAD, _SWEEPER_STOP_EVENT

    if _SWEEPER_THREAD is None or _SWEEPER_STOP_EVENT is None:
        return

    _SWEEPER_STOP_EVENT.set()
    _SWEEPER_THREAD.join(timeout=10.0)

    _SWEEPER_THREAD = None
    _SWEEPER_STOP_EVENT = None

    logger.info("pending sweeper thread stopped by shutdown")
