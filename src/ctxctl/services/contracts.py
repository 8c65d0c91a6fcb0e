"""Typed payload contracts for service and adapter boundaries.

These models validate operation payload shapes before they leave the
service layer so key regressions (for example ``layers`` vs ``chain``)
fail fast in tests and during development.
"""

from __future__ import annotations

from typing import Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T", bound=BaseModel)


def dump_validated(model_cls: type[T], data: dict) -> dict:
    """Validate *data* against *model_cls* and return a normalized payload dict."""
    model = model_cls.model_validate(data)
    return model.model_dump(mode="json")


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------


class ChainLinkItem(BaseModel):
    """One chain row of a resolved bundle."""

    scope: str
    key: str
    source: str
    tokens: int
    entries: int
    trimmed: int
    archived: int
    omitted: bool


class FactItem(BaseModel):
    """Winning value for one context/instruction key."""

    key: str
    kind: Literal["context", "instruction"]
    value: str
    scope: str
    layer: str
    superseded: list[dict] = Field(default_factory=list)


class MemoryItem(BaseModel):
    """One memory record with its provenance."""

    id: str
    text: str
    scope: str
    layer: str
    created_at: str
    pinned: bool
    tokens: int


class ResolveResultData(BaseModel):
    """Payload contract for ``ContextService.resolve``."""

    model_config = ConfigDict(extra="allow")

    request_signature: str
    snapshot_id: int
    snapshot_hash: str
    total_tokens: int
    budget: int
    remaining: int
    pressure: Literal["normal", "caution", "exceeded"]
    truncated: bool
    chain: list[ChainLinkItem]
    facts: list[FactItem]
    memory: list[MemoryItem]
    dropped_facts: list[str] = Field(default_factory=list)
    archived_count: int = 0


# ---------------------------------------------------------------------------
# match / layers / reload
# ---------------------------------------------------------------------------


class MatchItem(BaseModel):
    """One matching path pattern, in rank order."""

    rank: int
    pattern: str
    source: str
    literal_segments: int
    literal_prefix: int


class MatchResultData(BaseModel):
    """Payload contract for ``ContextService.match``."""

    path: str
    count: int
    items: list[MatchItem]


class LayerItem(BaseModel):
    """One row of ``ContextService.list_layers``."""

    scope: str
    key: str
    source: str
    entries: int
    tokens: int
    pinned: bool
    modified: str
    content_hash: str


class LayerListResultData(BaseModel):
    """Payload contract for ``ContextService.list_layers``."""

    snapshot_id: int
    count: int
    items: list[LayerItem]


class ReloadResultData(BaseModel):
    """Payload contract for ``ContextService.reload``."""

    snapshot_id: int
    snapshot_hash: str
    source: str
    layers: int
    skipped: int
    cached: int


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


class CheckIssue(BaseModel):
    """One finding returned by ``CheckService.check``."""

    model_config = ConfigDict(extra="allow")

    category: str
    severity: Literal["warning", "error"]
    source: str | None = None
    message: str


class CheckResultData(BaseModel):
    """Payload contract for ``CheckService.check``."""

    issues: list[CheckIssue]
    count: int
    error_count: int
    warning_count: int
    healthy: bool
    layers: int
