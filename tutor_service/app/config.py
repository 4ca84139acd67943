"""tutor-service 설정.

- LLM 접속 정보는 환경변수에서 읽는다.
- 가격표, AI 타임아웃/재시도, 요금제, 스위퍼 주기 등 운영 값은 config.yaml 에서 읽는다.
  파일이나 키가 없으면 기본값을 쓰고, 값이 잘못되면 RuntimeError 를 발생시킨다.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from common.llm.factory import ChatModelConfig, LlmProvider

from .models.usage import OperationKind


QUIZORA_LLM_PROVIDER = "QUIZORA_LLM_PROVIDER"
QUIZORA_LLM_MODEL_NAME = "QUIZORA_LLM_MODEL_NAME"
QUIZORA_LLM_API_KEY = "QUIZORA_LLM_API_KEY"
QUIZORA_LLM_TEMPERATURE = "QUIZORA_LLM_TEMPERATURE"
QUIZORA_LLM_BASE_URL = "QUIZORA_LLM_BASE_URL"
QUIZORA_CONFIG_PATH = "QUIZORA_CONFIG_PATH"

DEFAULT_CONFIG_FILE_NAME = "config.yaml"

DEFAULT_COSTS: dict[OperationKind, int] = {
    OperationKind.TEXT_QUESTION: 5,
    OperationKind.IMAGE_QUESTION: 15,
    OperationKind.AUDIO_SUMMARY: 20,
    OperationKind.MIND_MAP: 25,
    OperationKind.CHAT_TURN: 1,
    OperationKind.RESEARCH_PAPER: 50,
    OperationKind.TEXT_EDITING: 8,
    OperationKind.BOOK_CHAPTER: 3,
}

DEFAULT_TIMEOUTS: dict[OperationKind, float] = {
    OperationKind.TEXT_QUESTION: 30.0,
    OperationKind.IMAGE_QUESTION: 60.0,
    OperationKind.AUDIO_SUMMARY: 120.0,
    OperationKind.MIND_MAP: 60.0,
    OperationKind.CHAT_TURN: 45.0,
    OperationKind.RESEARCH_PAPER: 120.0,
    OperationKind.TEXT_EDITING: 45.0,
    OperationKind.BOOK_CHAPTER: 180.0,
}


@dataclass(slots=True)
class ChatPricingConfig:
    """채팅 가변 비용: clamp(ceil(len(answer) / chars_per_credit), min, max)."""

    chars_per_credit: int = 150
    min_credits: int = 1
    max_credits: int = 10


@dataclass(slots=True)
class PricingConfig:
    costs: dict[OperationKind, int] = field(default_factory=lambda: dict(DEFAULT_COSTS))
    chat: ChatPricingConfig = field(default_factory=ChatPricingConfig)
    book_outline_cost: int = 2
    book_credits_per_page: int = 3


@dataclass(slots=True)
class AIConfig:
    timeouts: dict[OperationKind, float] = field(
        default_factory=lambda: dict(DEFAULT_TIMEOUTS)
    )
    max_retries: int = 2
    backoff_base_seconds: float = 1.0
    backoff_factor: float = 2.0
    backoff_cap_seconds: float = 30.0
    max_concurrent_calls: int = 16


@dataclass(slots=True)
class AccountsConfig:
    signup_credits: int = 100


@dataclass(slots=True)
class PlanConfig:
    code: str
    label: str
    credits: int
    price: float
    valid_days: int | None
    bonus_credits: int = 0

    @property
    def total_credits(self) -> int:
        return self.credits + self.bonus_credits


@dataclass(slots=True)
class SweeperConfig:
    enabled: bool = True
    interval_seconds: float = 60.0
    pending_timeout_seconds: float = 900.0
    batch_size: int = 100


@dataclass(slots=True)
class ChatConfig:
    # 채팅 프롬프트에 포함할 직전 대화 턴 수
    history_turns: int = 10


def _default_plans() -> dict[str, PlanConfig]:
    plans = [
        PlanConfig(code="trial", label="Trial", credits=100, price=0.0, valid_days=7),
        PlanConfig(code="basic", label="Basic", credits=2000, price=20.0, valid_days=30),
        PlanConfig(
            code="advanced",
            label="Advanced",
            credits=5000,
            bonus_credits=1000,
            price=39.0,
            valid_days=30,
        ),
        PlanConfig(
            code="pro",
            label="Pro",
            credits=12000,
            bonus_credits=2000,
            price=99.0,
            valid_days=30,
        ),
    ]
    return {plan.code: plan for plan in plans}


@dataclass(slots=True)
class AppConfig:
    """tutor-service 운영 설정 루트."""

    pricing: PricingConfig = field(default_factory=PricingConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    accounts: AccountsConfig = field(default_factory=AccountsConfig)
    plans: dict[str, PlanConfig] = field(default_factory=_default_plans)
    sweeper: SweeperConfig = field(default_factory=SweeperConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)


# -------- env: LLM --------


def load_chat_model_config() -> ChatModelConfig:
    """LLM provider 기반 채팅 모델 설정을 로드한다."""

    provider_raw = os.getenv(QUIZORA_LLM_PROVIDER) or "google"
    provider = LlmProvider.from_str(provider_raw)

    model = os.getenv(QUIZORA_LLM_MODEL_NAME)
    if not model:
        raise RuntimeError(
            f"{QUIZORA_LLM_MODEL_NAME} environment variable is required for tutor-service",
        )

    api_key = os.getenv(QUIZORA_LLM_API_KEY) or None

    temperature_raw = os.getenv(QUIZORA_LLM_TEMPERATURE)
    if temperature_raw is None:
        temperature = 0.7
    else:
        try:
            temperature = float(temperature_raw)
        except ValueError as exc:
            raise RuntimeError(
                f"{QUIZORA_LLM_TEMPERATURE} must be a float if set, got: {temperature_raw!r}"
            ) from exc

    base_url = os.getenv(QUIZORA_LLM_BASE_URL) or None

    return ChatModelConfig(
        provider=provider,
        model=model,
        temperature=temperature,
        api_key=api_key,
        base_url=base_url,
    )


# -------- yaml: 운영 값 --------


def _find_config_path() -> Path | None:
    """QUIZORA_CONFIG_PATH 가 있으면 그 파일을, 없으면 작업 디렉토리부터 상위로 config.yaml 을 찾는다."""

    explicit = os.getenv(QUIZORA_CONFIG_PATH)
    if explicit:
        path = Path(explicit)
        if not path.is_file():
            raise RuntimeError(f"{QUIZORA_CONFIG_PATH} points to a missing file: {explicit}")
        return path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / DEFAULT_CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise RuntimeError(f"config section '{name}' must be a mapping")
    return value


def _as_int(section: dict[str, Any], key: str, default: int, where: str, minimum: int = 0) -> int:
    raw = section.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise RuntimeError(f"invalid {where}.{key}: {raw!r}") from exc
    if value < minimum:
        raise RuntimeError(f"{where}.{key} must be >= {minimum}, got {value}")
    return value


def _as_float(section: dict[str, Any], key: str, default: float, where: str) -> float:
    raw = section.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise RuntimeError(f"invalid {where}.{key}: {raw!r}") from exc
    if value < 0:
        raise RuntimeError(f"{where}.{key} must be >= 0, got {value}")
    return value


def _kind_map(raw: dict[str, Any], where: str) -> dict[OperationKind, Any]:
    result: dict[OperationKind, Any] = {}
    for key, value in raw.items():
        try:
            kind = OperationKind.from_slug(str(key))
        except ValueError as exc:
            raise RuntimeError(f"unknown operation kind in {where}: {key!r}") from exc
        result[kind] = value
    return result


def _load_pricing(data: dict[str, Any]) -> PricingConfig:
    section = _section(data, "pricing")
    costs = dict(DEFAULT_COSTS)
    for kind, raw in _kind_map(_section(section, "costs"), "pricing.costs").items():
        costs[kind] = _as_int({"v": raw}, "v", 0, f"pricing.costs.{kind.value}", minimum=1)

    chat_raw = _section(section, "chat")
    chat = ChatPricingConfig(
        chars_per_credit=_as_int(chat_raw, "chars_per_credit", 150, "pricing.chat", minimum=1),
        min_credits=_as_int(chat_raw, "min_credits", 1, "pricing.chat", minimum=1),
        max_credits=_as_int(chat_raw, "max_credits", 10, "pricing.chat", minimum=1),
    )
    if chat.max_credits < chat.min_credits:
        raise RuntimeError("pricing.chat.max_credits must be >= min_credits")
    costs[OperationKind.CHAT_TURN] = chat.min_credits

    book_raw = _section(section, "book")
    return PricingConfig(
        costs=costs,
        chat=chat,
        book_outline_cost=_as_int(book_raw, "outline_cost", 2, "pricing.book", minimum=1),
        book_credits_per_page=_as_int(
            book_raw, "credits_per_page", costs[OperationKind.BOOK_CHAPTER], "pricing.book", minimum=1
        ),
    )


def _load_ai(data: dict[str, Any]) -> AIConfig:
    section = _section(data, "ai")
    timeouts = dict(DEFAULT_TIMEOUTS)
    for kind, raw in _kind_map(_section(section, "timeouts"), "ai.timeouts").items():
        timeouts[kind] = _as_float({"v": raw}, "v", 0.0, f"ai.timeouts.{kind.value}")

    retry = _section(section, "retry")
    return AIConfig(
        timeouts=timeouts,
        max_retries=_as_int(retry, "max_retries", 2, "ai.retry"),
        backoff_base_seconds=_as_float(retry, "backoff_base_seconds", 1.0, "ai.retry"),
        backoff_factor=_as_float(retry, "backoff_factor", 2.0, "ai.retry"),
        backoff_cap_seconds=_as_float(retry, "backoff_cap_seconds", 30.0, "ai.retry"),
        max_concurrent_calls=_as_int(
            section, "max_concurrent_calls", 16, "ai", minimum=1
        ),
    )


def _load_plans(data: dict[str, Any]) -> dict[str, PlanConfig]:
    raw_plans = data.get("plans")
    if raw_plans is None:
        return _default_plans()
    if not isinstance(raw_plans, list):
        raise RuntimeError("config section 'plans' must be a list")

    plans: dict[str, PlanConfig] = {}
    for item in raw_plans:
        if not isinstance(item, dict):
            continue
        code = str(item.get("code", "")).strip().lower()
        if not code:
            raise RuntimeError("plans[].code is required")
        where = f"plans.{code}"
        valid_days_raw = item.get("valid_days")
        plans[code] = PlanConfig(
            code=code,
            label=str(item.get("label") or code.title()),
            credits=_as_int(item, "credits", 0, where, minimum=1),
            bonus_credits=_as_int(item, "bonus_credits", 0, where),
            price=_as_float(item, "price", 0.0, where),
            valid_days=(
                None
                if valid_days_raw is None
                else _as_int(item, "valid_days", 0, where, minimum=1)
            ),
        )
    return plans


def load_config(path: Path | None = None) -> AppConfig:
    """config.yaml 을 읽어 AppConfig 로 반환한다. 파일이 없으면 기본값."""

    if path is None:
        path = _find_config_path()
    if path is None:
        return AppConfig()

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise RuntimeError(f"{path} must contain a mapping at the top level")

    accounts = _section(data, "accounts")
    sweeper = _section(data, "sweeper")
    chat = _section(data, "chat")

    return AppConfig(
        pricing=_load_pricing(data),
        ai=_load_ai(data),
        accounts=AccountsConfig(
            signup_credits=_as_int(accounts, "signup_credits", 100, "accounts"),
        ),
        plans=_load_plans(data),
        sweeper=SweeperConfig(
            enabled=bool(sweeper.get("enabled", True)),
            interval_seconds=_as_float(sweeper, "interval_seconds", 60.0, "sweeper"),
            pending_timeout_seconds=_as_float(
                sweeper, "pending_timeout_seconds", 900.0, "sweeper"
            ),
            batch_size=_as_int(sweeper, "batch_size", 100, "sweeper", minimum=1),
        ),
        chat=ChatConfig(
            history_turns=_as_int(chat, "history_turns", 10, "chat"),
        ),
    )


_config: AppConfig | None = None
_config_lock = threading.Lock()


def get_app_config() -> AppConfig:
    """프로세스 전역 AppConfig 싱글톤."""

    global _config

    if _config is not None:
        return _config
    with _config_lock:
        if _config is None:
            _config = load_config()
    return _config
