from __future__ import annotations

from datetime import datetime

from pymongo.database import Database

from common.mongo.types import try_object_id

from ..models.subscription import Subscription, SubscriptionStatus
from .documents.subscription_document import SubscriptionDocument
from .errors import translate_mongo_errors
from .interfaces import SubscriptionRepositoryInterface


class SubscriptionRepository(SubscriptionRepositoryInterface):
    """subscriptions 컬렉션에 대한 MongoDB 접근 레이어.

    지급/회수처럼 잔액이 바뀌는 작업은 LedgerRepository 가 맡는다.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["subscriptions"]

    @staticmethod
    def _from_document(doc: dict) -> Subscription:
        return SubscriptionDocument.model_validate(doc).to_domain()

    def find_by_id(self, subscription_id: str) -> Subscription | None:
        oid = try_object_id(subscription_id)
        if oid is None:
            return None
        with translate_mongo_errors("find_subscription"):
            doc = self._col.find_one({"_id": oid})
        if not doc:
            return None
        return self._from_document(doc)

    def find_active(self, account_id: str) -> Subscription | None:
        with translate_mongo_errors("find_active_subscription"):
            doc = self._col.find_one(
                {"account_id": account_id, "status": SubscriptionStatus.ACTIVE.value}
            )
        if not doc:
            return None
        return self._from_document(doc)

    def list_by_account(self, account_id: str) -> list[Subscription]:
        with translate_mongo_errors("list_subscriptions"):
            cursor = self._col.find(
                {"account_id": account_id},
                sort=[("created_at", -1), ("_id", -1)],
            )
            return [self._from_document(doc) for doc in cursor]

    def expire_due(self, now: datetime) -> list[Subscription]:
        """ends_at 이 지난 active 구독을 expired 로 바꾼다. 남은 지급분은 잔액에 그대로 둔다."""
        query = {
            "status": SubscriptionStatus.ACTIVE.value,
            "ends_at": {"$ne": None, "$lte": now},
        }
        expired: list[Subscription] = []
        with translate_mongo_errors("expire_subscriptions"):
            for doc in self._col.find(query):
                result = self._col.update_one(
                    {"_id": doc["_id"], "status": SubscriptionStatus.ACTIVE.value},
                    {"$set": {"status": SubscriptionStatus.EXPIRED.value, "updated_at": now}},
                )
                if result.modified_count:
                    doc["status"] = SubscriptionStatus.EXPIRED.value
                    doc["updated_at"] = now
                    expired.append(self._from_document(doc))
        return expired

    def delete_by_account(self, account_id: str) -> int:
        with translate_mongo_errors("delete_subscriptions"):
            result = self._col.delete_many({"account_id": account_id})
        return result.deleted_count
