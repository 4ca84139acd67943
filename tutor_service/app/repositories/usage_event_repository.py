"""usage_events 읽기 레이어.

History Projection 과 스위퍼가 사용한다. 쓰기(차감/정산)는 LedgerRepository 만 한다.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pymongo.database import Database

from common.mongo.types import try_object_id

from ..models.conversation import KindStats, ThreadSummary, UsageStats, make_thread_title
from ..models.usage import OperationKind, UsageEvent, UsageStatus
from .documents.usage_event_document import UsageEventDocument
from .errors import translate_mongo_errors
from .interfaces import UsageEventRepositoryInterface


class UsageEventRepository(UsageEventRepositoryInterface):
    """usage_events 컬렉션에 대한 MongoDB 조회 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["usage_events"]

    @staticmethod
    def _from_document(doc: dict) -> UsageEvent:
        return UsageEventDocument.model_validate(doc).to_domain()

    def _page(
        self, query: dict[str, Any], page: int, page_size: int
    ) -> tuple[list[UsageEvent], int]:
        skip = (page - 1) * page_size
        with translate_mongo_errors("list_usage_events"):
            total = self._col.count_documents(query)
            cursor = self._col.find(
                query,
                sort=[("created_at", -1), ("_id", -1)],
                skip=skip,
                limit=page_size,
            )
            items = [self._from_document(doc) for doc in cursor]
        return items, total

    @staticmethod
    def _filters(
        kind: OperationKind | None, status: UsageStatus | None
    ) -> dict[str, Any]:
        query: dict[str, Any] = {}
        if kind is not None:
            query["kind"] = kind.value
        if status is not None:
            query["status"] = status.value
        return query

    def find_by_id(self, event_id: str) -> UsageEvent | None:
        oid = try_object_id(event_id)
        if oid is None:
            return None
        with translate_mongo_errors("find_usage_event"):
            doc = self._col.find_one({"_id": oid})
        if not doc:
            return None
        return self._from_document(doc)

    def list_by_account(
        self,
        account_id: str,
        page: int,
        page_size: int,
        kind: OperationKind | None = None,
        status: UsageStatus | None = None,
        session_id: str | None = None,
    ) -> tuple[list[UsageEvent], int]:
        query = {"account_id": account_id, **self._filters(kind, status)}
        if session_id is not None:
            query["session_id"] = session_id
        return self._page(query, page, page_size)

    def list_all(
        self,
        page: int,
        page_size: int,
        kind: OperationKind | None = None,
        status: UsageStatus | None = None,
    ) -> tuple[list[UsageEvent], int]:
        return self._page(self._filters(kind, status), page, page_size)

    @staticmethod
    def _chat_match(account_id: str) -> dict[str, Any]:
        return {
            "account_id": account_id,
            "kind": OperationKind.CHAT_TURN.value,
            "status": UsageStatus.COMMITTED.value,
            "session_id": {"$ne": None},
        }

    @staticmethod
    def _thread_stages(match: dict[str, Any]) -> list[dict[str, Any]]:
        return [
            {"$match": match},
            {"$sort": {"created_at": 1, "_id": 1}},
            {
                "$group": {
                    "_id": "$session_id",
                    "first_message": {"$first": "$input_text"},
                    "turn_count": {"$sum": 1},
                    "total_credits": {"$sum": "$actual_cost"},
                    "started_at": {"$min": "$created_at"},
                    "last_activity_at": {"$max": "$created_at"},
                }
            },
        ]

    @staticmethod
    def _thread_from_row(row: dict[str, Any]) -> ThreadSummary:
        return ThreadSummary(
            session_id=row["_id"],
            title=make_thread_title(row.get("first_message")),
            turn_count=row["turn_count"],
            total_credits=row.get("total_credits") or 0,
            started_at=row["started_at"],
            last_activity_at=row["last_activity_at"],
        )

    def list_threads(
        self, account_id: str, page: int, page_size: int
    ) -> tuple[list[ThreadSummary], int]:
        """session_id 로 묶은 대화 스레드 목록 (최근 활동 순)."""
        skip = (page - 1) * page_size
        pipeline: list[dict[str, Any]] = [
            *self._thread_stages(self._chat_match(account_id)),
            {"$sort": {"last_activity_at": -1, "_id": -1}},
            {
                "$facet": {
                    "items": [{"$skip": skip}, {"$limit": page_size}],
                    "total": [{"$count": "count"}],
                }
            },
        ]
        with translate_mongo_errors("list_threads"):
            result = next(self._col.aggregate(pipeline), None)

        if not result:
            return [], 0

        items = [self._thread_from_row(row) for row in result.get("items", [])]
        total_rows = result.get("total") or []
        total = total_rows[0]["count"] if total_rows else 0
        return items, total

    def thread_summary(self, account_id: str, session_id: str) -> ThreadSummary | None:
        match = {**self._chat_match(account_id), "session_id": session_id}
        with translate_mongo_errors("thread_summary"):
            row = next(self._col.aggregate(self._thread_stages(match)), None)
        if not row:
            return None
        return self._thread_from_row(row)

    def list_thread_turns(
        self, account_id: str, session_id: str, page: int, page_size: int
    ) -> tuple[list[UsageEvent], int]:
        query = {**self._chat_match(account_id), "session_id": session_id}
        skip = (page - 1) * page_size
        with translate_mongo_errors("list_thread_turns"):
            total = self._col.count_documents(query)
            cursor = self._col.find(
                query,
                sort=[("created_at", 1), ("_id", 1)],
                skip=skip,
                limit=page_size,
            )
            items = [self._from_document(doc) for doc in cursor]
        return items, total

    def recent_turns(
        self, account_id: str, session_id: str, limit: int
    ) -> list[UsageEvent]:
        """최근 limit 개 턴을 시간 오름차순으로 반환한다."""
        if limit <= 0:
            return []
        query = {**self._chat_match(account_id), "session_id": session_id}
        with translate_mongo_errors("recent_turns"):
            cursor = self._col.find(
                query,
                sort=[("created_at", -1), ("_id", -1)],
                limit=limit,
            )
            items = [self._from_document(doc) for doc in cursor]
        items.reverse()
        return items

    def stats(self, account_id: str) -> UsageStats:
        pipeline = [
            {
                "$match": {
                    "account_id": account_id,
                    "status": UsageStatus.COMMITTED.value,
                }
            },
            {
                "$group": {
                    "_id": "$kind",
                    "requests": {"$sum": 1},
                    "credits": {"$sum": "$actual_cost"},
                }
            },
        ]
        with translate_mongo_errors("usage_stats"):
            rows = list(self._col.aggregate(pipeline))

        stats = UsageStats(account_id=account_id)
        for row in rows:
            kind_stats = KindStats(requests=row["requests"], credits=row.get("credits") or 0)
            stats.by_kind[row["_id"]] = kind_stats
            stats.total_requests += kind_stats.requests
            stats.total_credits += kind_stats.credits
        return stats

    def find_stale_pending(
        self, created_before: datetime, limit: int
    ) -> list[UsageEvent]:
        with translate_mongo_errors("find_stale_pending"):
            cursor = self._col.find(
                {
                    "status": UsageStatus.PENDING.value,
                    "created_at": {"$lt": created_before},
                },
                sort=[("created_at", 1)],
                limit=limit,
            )
            return [self._from_document(doc) for doc in cursor]

    def delete_by_account(self, account_id: str) -> int:
        with translate_mongo_errors("delete_usage_events"):
            result = self._col.delete_many({"account_id": account_id})
        return result.deleted_count
