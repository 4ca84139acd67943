from __future__ import annotations

from tutor_service.app.services.structured import (
    fallback_outline,
    parse_mind_map,
    parse_outline,
)


def test_parse_mind_map_reads_json_wrapped_in_prose() -> None:
    text = (
        "Here is your mind map:\n"
        '{"title": "Atoms", "branches": [{"title": "Particles", "color": "#ef4444", '
        '"subbranches": [{"title": "Proton", "description": "positive"}]}]}\n'
        "Good luck!"
    )

    result = parse_mind_map(text, "Atoms")

    assert result.fallback is False
    assert result.data["branches"][0]["subbranches"][0]["title"] == "Proton"


def test_parse_mind_map_falls_back_on_schema_violation() -> None:
    result = parse_mind_map('{"title": "Atoms", "branches": []}', "Atoms")

    assert result.fallback is True
    assert result.data["title"] == "Atoms"
    branch = result.data["branches"][0]
    assert branch["title"] == "Core concepts"
    assert [leaf["title"] for leaf in branch["subbranches"]] == ["Definition", "Characteristics"]


def test_parse_mind_map_falls_back_on_broken_json() -> None:
    assert parse_mind_map('{"title": "Atoms", "branches": [', "Atoms").fallback is True
    assert parse_mind_map("", "Atoms").fallback is True


def test_parse_outline_keeps_camel_case_key() -> None:
    result = parse_outline('{"tableOfContents": [{"page": 1, "title": "Intro"}]}', "x", 10)

    assert result.fallback is False
    assert result.data == {"tableOfContents": [{"page": 1, "title": "Intro"}]}


def test_fallback_outline_spreads_chapters_over_pages() -> None:
    outline = fallback_outline("Geometry", 30)

    entries = outline.table_of_contents
    assert len(entries) == 10
    assert entries[0].page == 1
    assert entries[1].page == 4
    assert entries[-1].page <= 30
    assert entries[0].title == "Chapter 1: Geometry - Part 1"


def test_fallback_outline_has_at_least_three_chapters() -> None:
    outline = fallback_outline("Geometry", 2)

    assert len(outline.table_of_contents) == 3
    assert all(1 <= entry.page <= 2 for entry in outline.table_of_contents)


def test_parse_outline_uses_fallback_when_missing() -> None:
    result = parse_outline("no outline here", "Biology", 9)

    assert result.fallback is True
    assert len(result.data["tableOfContents"]) == 3
