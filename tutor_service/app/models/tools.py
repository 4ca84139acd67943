"""AI 도구별 입력 페이로드 모델.

8개 도구가 모두 같은 실행 흐름(가격 산정 -> 승인 -> 차감 -> 호출 -> 정산)을 따르고,
도구마다 다른 것은 이 페이로드와 프롬프트뿐이다.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import re
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..exceptions import InvalidPayloadError
from .usage import AttachmentRef, OperationKind


_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.S)

# base64 디코딩 후 기준. 프로바이더 inline 데이터 한도보다 작게 둔다.
MAX_INLINE_MEDIA_BYTES = 15 * 1024 * 1024


@dataclass(slots=True)
class InlineMedia:
    """프로바이더에 inline 으로 전달할 이미지/오디오."""

    mime_type: str
    data: str  # base64 (data URL 접두사 제거)
    size_bytes: int
    sha256: str

    def to_attachment(self) -> AttachmentRef:
        return AttachmentRef(
            mime_type=self.mime_type,
            size_bytes=self.size_bytes,
            sha256=self.sha256,
        )

    def as_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


def decode_inline_media(value: str, mime_type: str, expected_prefix: str) -> InlineMedia:
    """base64 문자열 또는 data URL 을 검증해 InlineMedia 로 만든다."""

    raw = value.strip()
    match = _DATA_URL_PATTERN.match(raw)
    if match:
        mime_type = match.group("mime")
        raw = match.group("data").strip()

    if not mime_type.startswith(expected_prefix):
        raise InvalidPayloadError(f"unsupported mime type: {mime_type}")

    try:
        decoded = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidPayloadError("media must be base64 encoded") from exc

    if not decoded:
        raise InvalidPayloadError("media is empty")
    if len(decoded) > MAX_INLINE_MEDIA_BYTES:
        raise InvalidPayloadError("media is too large")

    return InlineMedia(
        mime_type=mime_type,
        data=raw,
        size_bytes=len(decoded),
        sha256=hashlib.sha256(decoded).hexdigest(),
    )


class TextQuestionPayload(BaseModel):
    question: str = Field(min_length=1)


class ImageQuestionPayload(BaseModel):
    question: str = Field(default="이 이미지의 문제를 풀어주세요.", min_length=1)
    image: str = Field(min_length=1)
    mime_type: str = "image/jpeg"

    def media(self) -> InlineMedia:
        return decode_inline_media(self.image, self.mime_type, "image/")


class AudioSummaryPayload(BaseModel):
    audio: str = Field(min_length=1)
    mime_type: str = "audio/mpeg"
    duration_minutes: float | None = Field(default=None, ge=0)

    def media(self) -> InlineMedia:
        return decode_inline_media(self.audio, self.mime_type, "audio/")


class MindMapPayload(BaseModel):
    topic: str = Field(min_length=1, max_length=500)


class ChatTurnPayload(BaseModel):
    # 비어 있으면 새 대화 스레드를 시작한다.
    session_id: str | None = None
    message: str = Field(min_length=1)
    answer_type: Literal["detailed", "concise"] = "detailed"


class ResearchPaperPayload(BaseModel):
    topic: str = Field(min_length=1, max_length=500)
    pages: int = Field(default=5, ge=1, le=50)
    style: str = "academic"


class TextEditingPayload(BaseModel):
    text: str = Field(min_length=1)
    instruction: str = "문법과 표현을 자연스럽게 다듬어 주세요."


class BookChapterPayload(BaseModel):
    """책 작성 도구.

    action=outline 은 목차를 만들고, action=chapter 는 챕터 하나의 본문을 쓴다.
    """

    action: Literal["outline", "chapter"] = "outline"
    book_title: str = Field(min_length=1)
    topic: str = Field(min_length=1)
    author: str = ""
    language: str = "English"
    page_count: int = Field(default=30, ge=1, le=500)
    chapter_title: str | None = None
    chapter_number: int | None = Field(default=None, ge=1)
    total_chapters: int | None = Field(default=None, ge=1)
    pages: int = Field(default=3, ge=1, le=50)

    @model_validator(mode="after")
    def _require_chapter_fields(self) -> "BookChapterPayload":
        if self.action == "chapter" and not self.chapter_title:
            raise ValueError("chapter_title is required for action=chapter")
        return self


PAYLOAD_MODELS: dict[OperationKind, type[BaseModel]] = {
    OperationKind.TEXT_QUESTION: TextQuestionPayload,
    OperationKind.IMAGE_QUESTION: ImageQuestionPayload,
    OperationKind.AUDIO_SUMMARY: AudioSummaryPayload,
    OperationKind.MIND_MAP: MindMapPayload,
    OperationKind.CHAT_TURN: ChatTurnPayload,
    OperationKind.RESEARCH_PAPER: ResearchPaperPayload,
    OperationKind.TEXT_EDITING: TextEditingPayload,
    OperationKind.BOOK_CHAPTER: BookChapterPayload,
}


def parse_payload(kind: OperationKind, raw: dict[str, Any] | BaseModel) -> BaseModel:
    model = PAYLOAD_MODELS[kind]
    if isinstance(raw, model):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise InvalidPayloadError(
            f"invalid {kind.value} payload",
            errors=exc.errors(include_url=False, include_context=False),
        ) from exc
