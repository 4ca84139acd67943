"""구조화 출력(마인드맵, 책 목차) 파싱.

모델 응답에서 첫 `{...}` 블록을 꺼내 PydanticOutputParser 로 검증한다. 파싱이나
검증에 실패하면 기본 구조를 합성해서 돌려준다. 폴백은 청구액에 영향을 주지 않는다.
"""

from __future__ import annotations

import logging
import math
from typing import TypeVar

from langchain_core.exceptions import OutputParserException
from langchain_core.output_parsers import PydanticOutputParser
from pydantic import BaseModel, ConfigDict, Field

from common.llm.utils import extract_json_block


logger = logging.getLogger(__name__)

FALLBACK_BRANCH_COLOR = "#3b82f6"

M = TypeVar("M", bound=BaseModel)


class MindMapLeaf(BaseModel):
    title: str
    description: str = ""


class MindMapBranch(BaseModel):
    title: str
    color: str = FALLBACK_BRANCH_COLOR
    subbranches: list[MindMapLeaf] = Field(default_factory=list)


class MindMap(BaseModel):
    title: str
    branches: list[MindMapBranch] = Field(min_length=1)


class TableOfContentsEntry(BaseModel):
    page: int = Field(ge=1)
    title: str


class BookOutline(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    table_of_contents: list[TableOfContentsEntry] = Field(
        alias="tableOfContents", min_length=1
    )


class StructuredResult(BaseModel):
    """파싱 결과. fallback=True 면 모델 응답 대신 합성한 구조다."""

    data: dict
    fallback: bool = False


def format_instructions(model: type[BaseModel]) -> str:
    return PydanticOutputParser(pydantic_object=model).get_format_instructions()


def _parse(model: type[M], text: str) -> M | None:
    block = extract_json_block(text)
    if block is None:
        return None
    parser = PydanticOutputParser(pydantic_object=model)
    try:
        return parser.parse(block)
    except OutputParserException as exc:
        logger.warning("structured output rejected (%s): %s", model.__name__, exc)
        return None


def fallback_mind_map(topic: str) -> MindMap:
    return MindMap(
        title=topic,
        branches=[
            MindMapBranch(
                title="Core concepts",
                color=FALLBACK_BRANCH_COLOR,
                subbranches=[
                    MindMapLeaf(title="Definition", description="What the topic is"),
                    MindMapLeaf(title="Characteristics", description="Its main characteristics"),
                ],
            )
        ],
    )


def fallback_outline(topic: str, page_count: int) -> BookOutline:
    """max(3, ceil(pages/3)) 개의 챕터를 페이지에 고르게 배치한다."""
    page_count = max(page_count, 1)
    chapters = max(3, math.ceil(page_count / 3))
    pages_per_chapter = math.ceil(page_count / chapters)
    entries = [
        TableOfContentsEntry(
            page=min(i * pages_per_chapter + 1, page_count),
            title=f"Chapter {i + 1}: {topic} - Part {i + 1}",
        )
        for i in range(chapters)
    ]
    return BookOutline(table_of_contents=entries)


def parse_mind_map(text: str, topic: str) -> StructuredResult:
    parsed = _parse(MindMap, text)
    if parsed is None:
        return StructuredResult(data=fallback_mind_map(topic).model_dump(), fallback=True)
    return StructuredResult(data=parsed.model_dump())


def parse_outline(text: str, topic: str, page_count: int) -> StructuredResult:
    parsed = _parse(BookOutline, text)
    if parsed is None:
        outline = fallback_outline(topic, page_count)
        return StructuredResult(data=outline.model_dump(by_alias=True), fallback=True)
    return StructuredResult(data=parsed.model_dump(by_alias=True))
