"""채팅 모델 생성.

프로바이더별 langchain 채팅 모델을 만든다. 재시도와 도구별 타임아웃은 호출 측
(AI 어댑터)이 관리하므로, 여기서는 SDK 재시도를 끄고 요청 단위 타임아웃만 건다.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Self

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI


OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class LlmProvider(str, Enum):
    GOOGLE = "google"
    OPENAI = "openai"
    # OpenAI 호환 게이트웨이 (예: google/gemini-2.5-flash 를 프록시하는 경우)
    OPENROUTER = "openrouter"

    @classmethod
    def from_str(cls, value: str) -> Self:
        normalized = value.strip().lower()
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"unsupported LLM provider: {value}") from exc

    @property
    def api_key_envs(self) -> tuple[str, ...]:
        if self is LlmProvider.GOOGLE:
            return ("GOOGLE_API_KEY",)
        if self is LlmProvider.OPENROUTER:
            return ("OPENAI_API_KEY", "OPENROUTER_API_KEY")
        return ("OPENAI_API_KEY",)


@dataclass(slots=True)
class ChatModelConfig:
    provider: LlmProvider
    model: str
    temperature: float = 0.7
    api_key: str | None = None
    base_url: str | None = None
    max_retries: int = 0
    max_output_tokens: int | None = None
    # SDK 요청 타임아웃(초). 가장 긴 도구 타임아웃보다 약간 길게 둔다.
    request_timeout: float | None = None


def _export_api_key(config: ChatModelConfig) -> None:
    if not config.api_key:
        return
    for env_name in config.provider.api_key_envs:
        os.environ.setdefault(env_name, config.api_key)


def _google_chat(config: ChatModelConfig) -> BaseChatModel:
    return ChatGoogleGenerativeAI(
        model=config.model,
        temperature=config.temperature,
        max_retries=config.max_retries,
        max_output_tokens=config.max_output_tokens,
        timeout=config.request_timeout,
    )


def _openai_chat(config: ChatModelConfig) -> BaseChatModel:
    base_url = config.base_url
    if config.provider is LlmProvider.OPENROUTER:
        base_url = base_url or OPENROUTER_BASE_URL
    return ChatOpenAI(
        model=config.model,
        temperature=config.temperature,
        base_url=base_url,
        max_retries=config.max_retries,
        max_tokens=config.max_output_tokens,
        timeout=config.request_timeout,
    )


_CHAT_BUILDERS: dict[LlmProvider, Callable[[ChatModelConfig], BaseChatModel]] = {
    LlmProvider.GOOGLE: _google_chat,
    LlmProvider.OPENAI: _openai_chat,
    LlmProvider.OPENROUTER: _openai_chat,
}


def create_chat_model(config: ChatModelConfig) -> BaseChatModel:
    _export_api_key(config)
    try:
        builder = _CHAT_BUILDERS[config.provider]
    except KeyError as exc:
        raise ValueError(f"unsupported chat provider: {config.provider}") from exc
    return builder(config)
