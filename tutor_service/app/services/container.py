"""서비스 조립.

레포지토리 구현(Mongo 또는 테스트용 in-memory)을 받아 서비스 그래프를 만든다.
"""

from __future__ import annotations

from dataclasses import dataclass

from pymongo import MongoClient
from pymongo.database import Database

from ..config import AppConfig
from ..repositories.account_repository import AccountRepository
from ..repositories.interfaces import (
    AccountRepositoryInterface,
    LedgerRepositoryInterface,
    SubscriptionRepositoryInterface,
    UsageEventRepositoryInterface,
)
from ..repositories.ledger_repository import LedgerRepository
from ..repositories.subscription_repository import SubscriptionRepository
from ..repositories.usage_event_repository import UsageEventRepository
from .accounts_service import AccountsService
from .ai_adapter import AIAdapter
from .authorization_service import AuthorizationService
from .history_service import HistoryService
from .ledger_service import LedgerService
from .notifier import BalanceNotifier
from .pricing import PricingService
from .reconciliation import Reconciler
from .subscription_service import SubscriptionService
from .sweep_service import SweepService
from .tool_service import ToolService


@dataclass(slots=True)
class ServiceContainer:
    config: AppConfig
    pricing: PricingService
    authorization: AuthorizationService
    reconciler: Reconciler
    ledger: LedgerService
    history: HistoryService
    accounts: AccountsService
    subscriptions: SubscriptionService
    sweeper: SweepService
    # LLM 설정이 없으면 None (도구 API 는 503)
    tools: ToolService | None = None


def build_container(
    config: AppConfig,
    *,
    account_repo: AccountRepositoryInterface,
    ledger_repo: LedgerRepositoryInterface,
    event_repo: UsageEventRepositoryInterface,
    subscription_repo: SubscriptionRepositoryInterface,
    notifier: BalanceNotifier,
    adapter: AIAdapter | None = None,
) -> ServiceContainer:
    pricing = PricingService(config.pricing)
    authorization = AuthorizationService(account_repo)
    reconciler = Reconciler(ledger_repo, notifier)
    ledger = LedgerService(ledger_repo, account_repo, reconciler, notifier)
    history = HistoryService(event_repo)
    subscriptions = SubscriptionService(config.plans, ledger_repo, subscription_repo, notifier)
    accounts = AccountsService(
        config.accounts.signup_credits,
        account_repo,
        ledger_repo,
        event_repo,
        subscription_repo,
        notifier,
    )
    sweeper = SweepService(config.sweeper, event_repo, reconciler, subscriptions)

    tools = None
    if adapter is not None:
        tools = ToolService(config, pricing, authorization, ledger, history, adapter)

    return ServiceContainer(
        config=config,
        pricing=pricing,
        authorization=authorization,
        reconciler=reconciler,
        ledger=ledger,
        history=history,
        accounts=accounts,
        subscriptions=subscriptions,
        sweeper=sweeper,
        tools=tools,
    )


def build_mongo_container(
    config: AppConfig,
    client: MongoClient,
    database: Database,
    notifier: BalanceNotifier,
    adapter: AIAdapter | None = None,
) -> ServiceContainer:
    return build_container(
        config,
        account_repo=AccountRepository(database),
        ledger_repo=LedgerRepository(client, database),
        event_repo=UsageEventRepository(database),
        subscription_repo=SubscriptionRepository(database),
        notifier=notifier,
        adapter=adapter,
    )
