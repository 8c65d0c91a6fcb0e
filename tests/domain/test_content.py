"""Tests for layer document parsing."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from ctxctl.domain.content import (
    LayerDocument,
    build_layer,
    estimate_tokens,
    parse_frontmatter,
)
from ctxctl.domain.errors import LayerLoadError
from ctxctl.domain.types import Scope, SectionKind

_BODY = """\
## Context
- caching-strategy: Use write-through caching.
- [priority=1 tokens=7] error-style: Raise typed errors.

## Instructions
- [task=review task=refactor] naming: Prefer full words.

## Memory
- [2026-02-01 pinned] Migrated handlers to v2.
- Switched to the new queue
  after the outage.
"""


def _doc(body: str = _BODY, **frontmatter) -> LayerDocument:
    fm = {"scope": "path", "key": "src/handlers/**", "modified": "2026-03-01"}
    fm.update(frontmatter)
    return LayerDocument(source="paths/handlers.md", frontmatter=fm, body=body)


class TestParseFrontmatter:
    def test_splits_yaml_and_body(self) -> None:
        fm, body = parse_frontmatter("---\nscope: global\nmodified: 2026-01-01\n---\nHello\n")
        assert fm["scope"] == "global"
        assert body == "Hello\n"

    def test_crlf_line_endings(self) -> None:
        fm, body = parse_frontmatter("---\r\nscope: domain\r\nkey: payments\r\n---\r\nBody")
        assert fm == {"scope": "domain", "key": "payments"}
        assert body == "Body"

    def test_no_frontmatter(self) -> None:
        assert parse_frontmatter("# Title\n") == ({}, "# Title\n")

    def test_unclosed_frontmatter(self) -> None:
        content = "---\nscope: global\n"
        assert parse_frontmatter(content) == ({}, content)

    def test_invalid_yaml(self) -> None:
        with pytest.raises(ValueError, match="invalid YAML"):
            parse_frontmatter("---\nscope: [unclosed\n---\n")

    def test_non_mapping_frontmatter(self) -> None:
        with pytest.raises(ValueError, match="mapping"):
            parse_frontmatter("---\n- a\n- b\n---\n")


class TestBuildLayer:
    def test_sections_from_body(self) -> None:
        layer = build_layer(_doc())
        assert layer.scope is Scope.PATH
        assert layer.key == "src/handlers/**"
        assert [s.kind for s in layer.sections] == [
            SectionKind.CONTEXT,
            SectionKind.INSTRUCTION,
            SectionKind.MEMORY,
        ]

    def test_fact_entries(self) -> None:
        context = build_layer(_doc()).sections[0]
        first, second = context.entries
        assert first.key == "caching-strategy"
        assert first.payload == "Use write-through caching."
        assert first.priority is None
        assert second.priority == 1
        assert second.estimated_tokens == 7
        assert second.id == "error-style"

    def test_task_tags(self) -> None:
        entry = build_layer(_doc()).sections[1].entries[0]
        assert entry.task_types == ("review", "refactor")
        assert entry.applies_to("review")
        assert not entry.applies_to("debug")

    def test_memory_entries(self) -> None:
        first, second = build_layer(_doc()).sections[2].entries
        assert first.pinned
        assert first.created_at == datetime(2026, 2, 1, tzinfo=UTC)
        assert first.key is None
        assert first.id == "memory-1"
        assert second.payload == "Switched to the new queue after the outage."
        assert second.created_at == datetime(2026, 3, 1, tzinfo=UTC)
        assert second.id == "memory-2"

    def test_global_key_defaults(self) -> None:
        fm = {"scope": "global", "modified": "2026-01-01"}
        layer = build_layer(LayerDocument(source="g.md", frontmatter=fm))
        assert layer.key == "global"
        assert layer.sections == ()

    def test_modified_falls_back_to_document(self) -> None:
        mtime = datetime(2026, 4, 2, 12, 0, tzinfo=UTC)
        doc = LayerDocument(source="g.md", frontmatter={"scope": "global"}, modified=mtime)
        assert build_layer(doc).modified == mtime

    def test_structured_sections(self) -> None:
        doc = LayerDocument(
            source="projects/checkout.yaml",
            frontmatter={
                "scope": "project",
                "key": "checkout",
                "modified": "2026-01-01",
                "sections": [
                    {"kind": "context", "entries": [{"key": "framework", "value": "Express"}]},
                    {"kind": "memory", "entries": [{"text": "Shipped", "created": "2026-02-02"}]},
                ],
            },
        )
        layer = build_layer(doc)
        assert layer.sections[0].entries[0].payload == "Express"
        assert layer.sections[1].entries[0].created_at == datetime(2026, 2, 2, tzinfo=UTC)

    def test_duplicate_keys_get_unique_ids(self) -> None:
        body = "## Context\n- a: one\n- a: two\n"
        entries = build_layer(_doc(body)).sections[0].entries
        assert [e.id for e in entries] == ["a", "a~2"]

    def test_unknown_headings_are_ignored(self) -> None:
        body = "# Handlers\n\nIntro text.\n\n## Notes\n- not: parsed\n\n## Context\n- a: b\n"
        layer = build_layer(_doc(body))
        assert len(layer.sections) == 1
        assert layer.sections[0].entries[0].key == "a"

    def test_content_hash_is_stable(self) -> None:
        assert build_layer(_doc()).content_hash == build_layer(_doc()).content_hash
        assert build_layer(_doc()).content_hash != build_layer(_doc(pinned=True)).content_hash

    def test_bracketed_text_that_is_not_tags_stays_in_payload(self) -> None:
        body = "## Memory\n- [WIP] Migrating handlers.\n- [2026-02-01 WIP] Half tagged.\n"
        entries = build_layer(_doc(body)).sections[0].entries
        assert [e.payload for e in entries] == [
            "[WIP] Migrating handlers.",
            "[2026-02-01 WIP] Half tagged.",
        ]
        assert entries[0].created_at == datetime(2026, 3, 1, tzinfo=UTC)
        assert not entries[1].pinned

    @pytest.mark.parametrize(
        ("pinned", "expected"),
        [(True, True), (False, False), ("false", False), ("True", True), ("no", False)],
    )
    def test_pinned_values(self, pinned: object, expected: bool) -> None:
        assert build_layer(_doc(pinned=pinned)).pinned is expected

    def test_structured_entry_pinned_string(self) -> None:
        doc = LayerDocument(
            source="g.md",
            frontmatter={
                "scope": "global",
                "modified": "2026-01-01",
                "sections": [
                    {"kind": "memory", "entries": [{"text": "Shipped", "pinned": "false"}]},
                ],
            },
        )
        assert not build_layer(doc).sections[0].entries[0].pinned

    def test_glob_key_is_normalized(self) -> None:
        layer = build_layer(_doc(key="./src\\handlers/**"))
        assert layer.key == "src/handlers/**"


class TestBuildLayerErrors:
    @pytest.mark.parametrize(
        ("frontmatter", "reason"),
        [
            ({"scope": None}, "missing scope"),
            ({"scope": "planet"}, "unknown scope"),
            ({"key": None}, "missing a key"),
            ({"key": "src/[abc"}, "unbalanced"),
            ({"modified": "yesterday"}, "invalid timestamp"),
        ],
    )
    def test_invalid_frontmatter(self, frontmatter: dict, reason: str) -> None:
        with pytest.raises(LayerLoadError, match=reason) as exc_info:
            build_layer(_doc(**frontmatter))
        assert exc_info.value.source == "paths/handlers.md"

    def test_global_with_other_key(self) -> None:
        with pytest.raises(LayerLoadError, match="must be 'global'"):
            build_layer(_doc(scope="global", key="everything"))

    def test_missing_modified(self) -> None:
        doc = LayerDocument(source="g.md", frontmatter={"scope": "global"})
        with pytest.raises(LayerLoadError, match="missing modified"):
            build_layer(doc)

    def test_fact_without_key(self) -> None:
        with pytest.raises(LayerLoadError, match="key: value"):
            build_layer(_doc("## Context\n- just some prose\n"))

    def test_bad_tag_value(self) -> None:
        with pytest.raises(LayerLoadError, match="priority must be an integer"):
            build_layer(_doc("## Context\n- [priority=high] a: b\n"))

    @pytest.mark.parametrize("pinned", ["maybe", 1, [True]])
    def test_invalid_pinned(self, pinned: object) -> None:
        with pytest.raises(LayerLoadError, match="pinned must be true or false"):
            build_layer(_doc(pinned=pinned))

    def test_duplicate_explicit_id(self) -> None:
        with pytest.raises(LayerLoadError, match="duplicate entry id"):
            build_layer(_doc("## Context\n- [id=x] a: 1\n- [id=x] b: 2\n"))

    def test_document_error_is_reported(self) -> None:
        doc = LayerDocument(source="bad.md", frontmatter={"key": "k"}, error="unreadable")
        with pytest.raises(LayerLoadError, match="unreadable") as exc_info:
            build_layer(doc)
        assert exc_info.value.key == "k"

    def test_detail_payload(self) -> None:
        with pytest.raises(LayerLoadError) as exc_info:
            build_layer(_doc(scope="planet"))
        assert exc_info.value.detail() == {
            "key": "src/handlers/**",
            "source": "paths/handlers.md",
            "reason": "unknown scope 'planet'",
        }


class TestEstimateTokens:
    def test_chars_over_four(self) -> None:
        assert estimate_tokens("x" * 40) == 10

    def test_minimum_one(self) -> None:
        assert estimate_tokens("") == 1
