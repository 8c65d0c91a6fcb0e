"""Tests for request models and scope ordering."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ctxctl.domain.models import ResolutionRequest, normalize_path
from ctxctl.domain.types import DEFAULT_FILL_ORDER, SCOPE_ORDER, Scope
from tests.conftest import AS_OF


class TestNormalizePath:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("src/a.ts", "src/a.ts"),
            ("./src/a.ts", "src/a.ts"),
            ("././src/a.ts", "src/a.ts"),
            ("src\\handlers\\a.ts", "src/handlers/a.ts"),
            ("/src/a.ts", "src/a.ts"),
        ],
    )
    def test_normalize(self, raw: str, expected: str) -> None:
        assert normalize_path(raw) == expected


class TestResolutionRequest:
    def test_file_path_normalized(self) -> None:
        request = ResolutionRequest(file_path=".\\src\\a.ts", budget_tokens=100)
        assert request.file_path == "src/a.ts"

    def test_empty_file_path_becomes_none(self) -> None:
        assert ResolutionRequest(file_path="./", budget_tokens=100).file_path is None

    def test_budget_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ResolutionRequest(budget_tokens=0)

    def test_signature_is_stable(self) -> None:
        a = ResolutionRequest(file_path="src/a.ts", project="p", budget_tokens=100, as_of=AS_OF)
        b = ResolutionRequest(file_path="./src/a.ts", project="p", budget_tokens=100, as_of=AS_OF)
        assert a.signature() == b.signature()

    @pytest.mark.parametrize(
        "change",
        [
            {"file_path": "src/b.ts"},
            {"domain": "payments"},
            {"feature": "dark-mode"},
            {"task_type": "review"},
            {"budget_tokens": 101},
            {"as_of": None},
        ],
    )
    def test_signature_covers_every_field(self, change: dict) -> None:
        base = {"file_path": "src/a.ts", "budget_tokens": 100, "as_of": AS_OF}
        original = ResolutionRequest(**base)
        changed = ResolutionRequest(**{**base, **change})
        assert original.signature() != changed.signature()

    def test_frozen(self) -> None:
        request = ResolutionRequest(budget_tokens=100)
        with pytest.raises(ValidationError):
            request.budget_tokens = 5


class TestScopes:
    def test_hierarchy_order(self) -> None:
        assert [str(s) for s in SCOPE_ORDER] == ["global", "domain", "project", "path", "feature"]

    def test_default_fill_order_is_most_specific_first(self) -> None:
        assert DEFAULT_FILL_ORDER == tuple(reversed(SCOPE_ORDER))

    def test_scope_is_string(self) -> None:
        assert Scope("path") == "path"
