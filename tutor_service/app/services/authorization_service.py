"""Credit Authorization.

부수 효과 없는 사전 점검. 실제 차감의 안전성은 LedgerService.deduct 가 보장하며,
이 결과는 UI 가 버튼을 비활성화하거나 부족분을 보여주는 데 쓰인다.
"""

from __future__ import annotations

from ..exceptions import AccountNotFoundError, InsufficientCreditsError
from ..models.credit import AuthorizationResult
from ..repositories.interfaces import AccountRepositoryInterface


class AuthorizationService:
    def __init__(self, account_repo: AccountRepositoryInterface) -> None:
        self._account_repo = account_repo

    def authorize(self, account_id: str, declared_cost: int) -> AuthorizationResult:
        account = self._account_repo.find_by_account_id(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)

        shortfall = max(declared_cost - account.balance, 0)
        return AuthorizationResult(
            account_id=account_id,
            declared_cost=declared_cost,
            balance=account.balance,
            authorized=shortfall == 0,
            shortfall=shortfall,
        )

    def require(self, account_id: str, declared_cost: int) -> AuthorizationResult:
        """승인되지 않으면 InsufficientCreditsError 를 발생시킨다."""
        result = self.authorize(account_id, declared_cost)
        if not result.authorized:
            raise InsufficientCreditsError(required=declared_cost, balance=result.balance)
        return result
