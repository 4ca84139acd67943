from __future__ import annotations

import logging
import threading
from typing import Optional, cast

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from .config import (
    get_mongo_db_name,
    get_mongo_uri,
    get_server_selection_timeout_ms,
)


logger = logging.getLogger(__name__)


_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def get_client() -> MongoClient:
    """전역 MongoClient 싱글톤을 반환한다.

    - MONGO_URI 에서 URI 를 읽어온다.
    - ping 으로 연결을 검증한다.
    - URI 에 기본 데이터베이스가 포함되어 있지 않고 MONGO_DB_NAME 도 없으면 에러를 발생시킨다.
    - 원장 컬렉션(accounts, usage_events, subscriptions, credit_transactions) 인덱스를 한 번만 생성한다.
    """

    global _client, _db

    if _client is not None:
        return _client

    with _lock:
        if _client is not None:
            return _client

        uri = get_mongo_uri()
        client: MongoClient = MongoClient(
            uri,
            tz_aware=True,
            serverSelectionTimeoutMS=get_server_selection_timeout_ms(),
        )

        try:
            client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        db_name = get_mongo_db_name()
        try:
            if db_name:
                db = client[db_name]
            else:
                db = client.get_default_database()
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        _client = client
        _db = db

        try:
            _ensure_indexes(_db)
        except Exception as exc:  # noqa: BLE001
            logger.error("failed to ensure MongoDB indexes: %s", exc)
            raise

        safe_db = cast(Database, _db)
        logger.info("MongoDB connected and indexes ensured (db=%s)", safe_db.name)
        return _client


def get_database() -> Database:
    """전역 기본 Database 객체를 반환한다."""

    global _db

    if _db is None:
        get_client()
    assert _db is not None
    return _db


def _ensure_indexes(db: Database) -> None:
    """원장 컬렉션 인덱스를 생성한다. 중복 생성은 MongoDB 가 무시하므로 idempotent 하다."""

    accounts = db["accounts"]
    accounts.create_index(
        [("account_id", ASCENDING)],
        name="uniq_account_id",
        unique=True,
    )
    accounts.create_index(
        [("created_at", DESCENDING), ("_id", DESCENDING)],
        name="idx_created_at_id_desc",
    )

    events = db["usage_events"]
    events.create_index(
        [("account_id", ASCENDING), ("created_at", DESCENDING), ("_id", DESCENDING)],
        name="idx_account_created_desc",
    )
    events.create_index(
        [("account_id", ASCENDING), ("session_id", ASCENDING), ("created_at", ASCENDING)],
        name="idx_account_session_created",
        partialFilterExpression={"kind": "chat_turn"},
    )
    # 스위퍼가 오래된 pending 이벤트를 찾을 때 사용한다.
    events.create_index(
        [("status", ASCENDING), ("created_at", ASCENDING)],
        name="idx_status_created",
    )

    subscriptions = db["subscriptions"]
    subscriptions.create_index(
        [("account_id", ASCENDING)],
        name="uniq_active_subscription_per_account",
        unique=True,
        partialFilterExpression={"status": "active"},
    )
    subscriptions.create_index(
        [("status", ASCENDING), ("ends_at", ASCENDING)],
        name="idx_status_ends_at",
    )

    transactions = db["credit_transactions"]
    transactions.create_index(
        [("account_id", ASCENDING), ("created_at", DESCENDING)],
        name="idx_account_created_desc",
    )
