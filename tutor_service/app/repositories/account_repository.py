from __future__ import annotations

from pymongo import ReturnDocument
from pymongo.database import Database

from common.types.datetime import utc_now

from ..models.account import Account, AccountRole
from .documents.account_document import AccountDocument
from .errors import translate_mongo_errors
from .interfaces import AccountRepositoryInterface


class AccountRepository(AccountRepositoryInterface):
    """accounts 컬렉션에 대한 MongoDB 접근 레이어 (조회/관리 전용)."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["accounts"]

    @staticmethod
    def _from_document(doc: dict) -> Account:
        return AccountDocument.model_validate(doc).to_domain()

    def find_by_account_id(self, account_id: str) -> Account | None:
        with translate_mongo_errors("find_account"):
            doc = self._col.find_one({"account_id": account_id})
        if not doc:
            return None
        return self._from_document(doc)

    def list(self, page: int, page_size: int) -> tuple[list[Account], int]:
        skip = (page - 1) * page_size
        with translate_mongo_errors("list_accounts"):
            total = self._col.count_documents({})
            cursor = self._col.find(
                {},
                sort=[("created_at", -1), ("_id", -1)],
                skip=skip,
                limit=page_size,
            )
            items = [self._from_document(doc) for doc in cursor]
        return items, total

    def set_role(self, account_id: str, role: AccountRole) -> Account | None:
        with translate_mongo_errors("set_role"):
            doc = self._col.find_one_and_update(
                {"account_id": account_id},
                {"$set": {"role": role.value, "updated_at": utc_now()}},
                return_document=ReturnDocument.AFTER,
            )
        if not doc:
            return None
        return self._from_document(doc)

    def delete_by_account_id(self, account_id: str) -> bool:
        """계정과 크레딧 트랜잭션 로그를 삭제한다.

        사용 이벤트와 구독은 각 레포지토리에서 지운다.
        """

        with translate_mongo_errors("delete_account"):
            result = self._col.delete_one({"account_id": account_id})
            self._db["credit_transactions"].delete_many({"account_id": account_id})
        return result.deleted_count > 0
