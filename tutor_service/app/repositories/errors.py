from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from pymongo.errors import PyMongoError

from ..exceptions import PersistenceError


logger = logging.getLogger(__name__)


@contextmanager
def translate_mongo_errors(action: str) -> Iterator[None]:
    """pymongo 예외를 도메인 PersistenceError 로 바꾼다."""
    try:
        yield
    except PyMongoError as exc:
        logger.error("ledger store operation failed (action=%s): %s", action, exc)
        raise PersistenceError(f"ledger store unavailable during {action}") from exc
