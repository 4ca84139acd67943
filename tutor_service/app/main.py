from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from common.eventbus.kafka import close_kafka_event_bus
from common.logger import setup_logger
from common.middleware.request_trace import RequestTraceMiddleware
from common.mongo.client import get_client, get_database

from .api.errors import install_error_handlers
from .api.health import router as health_router
from .api.v1 import api_router
from .config import get_app_config, load_chat_model_config
from .scheduler.pending_sweeper import start_pending_sweeper, stop_pending_sweeper
from .services.ai_adapter import AIAdapter, build_ai_adapter
from .services.container import build_mongo_container
from .services.notifier import KafkaBalanceNotifier
from .services.pricing import PricingService


logger = logging.getLogger(__name__)


def _build_adapter() -> AIAdapter | None:
    config = get_app_config()
    try:
        llm_config = load_chat_model_config()
    except RuntimeError:
        logger.exception("LLM is not configured; AI tools are disabled")
        return None
    return build_ai_adapter(llm_config, config.ai, PricingService(config.pricing))


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - framework hook
    config = get_app_config()
    adapter = _build_adapter()
    container = build_mongo_container(
        config,
        get_client(),
        get_database(),
        KafkaBalanceNotifier(),
        adapter,
    )
    app.state.container = container

    if config.sweeper.enabled:
        start_pending_sweeper(container.sweeper, config.sweeper.interval_seconds)

    try:
        yield
    finally:
        stop_pending_sweeper()
        if adapter is not None:
            adapter.close()
        close_kafka_event_bus()


def create_app() -> FastAPI:
    setup_logger()
    app = FastAPI(
        title="Quizora Tutor Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 공통 Request/Span ID 로그 미들웨어
    app.add_middleware(RequestTraceMiddleware)
    install_error_handlers(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def main() -> None:
    import uvicorn

    port = int(os.getenv("TUTOR_SERVICE_PORT", "8002"))
    uvicorn.run(
        "tutor_service.app.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
