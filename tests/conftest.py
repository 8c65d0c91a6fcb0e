"""Shared pytest fixtures and test helpers for ctxctl tests."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from ctxctl.config.settings import CtxSettings
from ctxctl.domain.content import LayerDocument, build_layer
from ctxctl.domain.models import Layer
from ctxctl.infrastructure.sources import MappingSource
from ctxctl.services.engine import ContextEngine
from ctxctl.services.telemetry import disable_telemetry

AS_OF = datetime(2026, 6, 1, tzinfo=UTC)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def settings(tmp_path: Path) -> CtxSettings:
    """Settings rooted at a temp directory with code defaults."""
    return CtxSettings.from_cli(project_root=tmp_path)


@pytest.fixture
def layer_dir(tmp_path: Path) -> Path:
    """Temporary ``context/`` directory holding a small sample hierarchy.

    This is the single source of truth for the on-disk layer layout used by
    command and service tests.
    """
    root = tmp_path / "context"
    write_layer(
        root / "global.md",
        scope="global",
        body="""\
## Context
- language: TypeScript
- error-style: Return Result objects

## Instructions
- [pinned] review: Keep diffs small

## Memory
- [2026-05-20] Adopted the new logger.
""",
    )
    write_layer(
        root / "domains" / "payments.md",
        scope="domain",
        key="payments",
        body="""\
## Context
- error-style: Raise typed PaymentError
- currency: Amounts are integer cents
""",
    )
    write_layer(
        root / "projects" / "checkout.md",
        scope="project",
        key="checkout",
        body="""\
## Context
- framework: Express
""",
    )
    write_layer(
        root / "paths" / "handlers.md",
        scope="path",
        key="src/handlers/**",
        body="""\
## Context
- caching-strategy: Write-through
""",
    )
    write_layer(
        root / "paths" / "user-handler.md",
        scope="path",
        key="src/handlers/user.*",
        body="""\
## Context
- caching-strategy: Read-through with 60s TTL
""",
    )
    (root / "README.md").write_text("# Layers\n\nNot a layer document.\n", encoding="utf-8")
    return root


@pytest.fixture
def _isolated_layers(layer_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to the temp project so the CLI finds ``context/`` by default.

    Use via ``@pytest.mark.usefixtures("_isolated_layers")`` on command test
    classes.
    """
    monkeypatch.delenv("CTXCTL_CONFIG", raising=False)
    monkeypatch.chdir(layer_dir.parent)


@pytest.fixture(autouse=True)
def _reset_telemetry() -> Iterator[None]:
    """Keep a verbose CLI invocation from leaking telemetry into later tests."""
    yield
    disable_telemetry()


# ---------------------------------------------------------------------------
# Shared test helpers (used across test modules)
# ---------------------------------------------------------------------------


def write_layer(
    path: Path,
    *,
    scope: str,
    key: str | None = None,
    body: str = "",
    modified: str = "2026-01-01",
    pinned: bool = False,
) -> Path:
    """Write a markdown layer document with front-matter."""
    lines = ["---", f"scope: {scope}"]
    if key is not None:
        lines.append(f'key: "{key}"')
    lines.append(f"modified: {modified}")
    if pinned:
        lines.append("pinned: true")
    lines.append("---")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n" + body, encoding="utf-8")
    return path


def fact(
    key: str,
    value: str | None = None,
    *,
    tokens: int = 10,
    **extra: Any,
) -> dict[str, Any]:
    """A context/instruction entry mapping."""
    if value is None:
        value = f"{key} value"
    return {"key": key, "value": value, "tokens": tokens, **extra}


def facts(prefix: str, count: int, *, tokens: int) -> list[dict[str, Any]]:
    """*count* facts named ``prefix-0`` .. ``prefix-N`` of *tokens* each."""
    return [fact(f"{prefix}-{i}", tokens=tokens) for i in range(count)]


def memory(
    text: str,
    *,
    created: str = "2026-05-01",
    tokens: int = 10,
    **extra: Any,
) -> dict[str, Any]:
    """A memory entry mapping."""
    return {"text": text, "created": created, "tokens": tokens, **extra}


def doc(
    scope: str,
    key: str | None = None,
    *,
    context: Iterable[dict[str, Any]] = (),
    instructions: Iterable[dict[str, Any]] = (),
    memories: Iterable[dict[str, Any]] = (),
    pinned: bool = False,
    source: str | None = None,
    modified: str = "2026-01-01",
) -> dict[str, Any]:
    """A layer document mapping as accepted by :class:`MappingSource`."""
    sections = []
    for kind, entries in (
        ("context", list(context)),
        ("instruction", list(instructions)),
        ("memory", list(memories)),
    ):
        if entries:
            sections.append({"kind": kind, "entries": entries})
    data: dict[str, Any] = {
        "scope": scope,
        "modified": modified,
        "pinned": pinned,
        "sections": sections,
        "source": source or f"{scope}/{key or scope}",
    }
    if key is not None:
        data["key"] = key
    return data


def make_layer(scope: str, key: str | None = None, **kwargs: Any) -> Layer:
    """Build one validated :class:`Layer` from :func:`doc` arguments."""
    data = doc(scope, key, **kwargs)
    source = data.pop("source")
    return build_layer(LayerDocument(source=source, frontmatter=data))


def make_engine(*docs: dict[str, Any], **settings: Any) -> ContextEngine:
    """An engine loaded from mapping documents.

    Keyword arguments are settings overrides, e.g.
    ``archive={"retention_days": 30}``.
    """
    engine = ContextEngine(CtxSettings(**settings))
    engine.reload(MappingSource(list(docs)))
    return engine
