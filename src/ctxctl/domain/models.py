"""Layer, request, and bundle models.

All models are frozen pydantic models. Sequences are tuples so a snapshot
(and every bundle derived from it) can be shared across threads without
copying.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from ctxctl.domain.types import FACT_KINDS, Scope, SectionKind

# ---------------------------------------------------------------------------
# Layer content
# ---------------------------------------------------------------------------


class Entry(BaseModel):
    """One fact or memory record inside a section.

    Context/instruction entries carry a ``key``; memory entries are free
    text. ``priority`` is optional: when unset the entry's position in its
    section is its priority. Lower numbers are more important.
    """

    model_config = {"frozen": True}

    id: str
    created_at: datetime
    pinned: bool = False
    estimated_tokens: int = Field(ge=0)
    priority: int | None = None
    key: str | None = None
    payload: str
    task_types: tuple[str, ...] = ()

    def applies_to(self, task_type: str) -> bool:
        """Untagged entries apply to every task type."""
        return not self.task_types or task_type in self.task_types


class Section(BaseModel):
    """An ordered group of entries of one kind."""

    model_config = {"frozen": True}

    kind: SectionKind
    entries: tuple[Entry, ...] = ()

    @property
    def tokens(self) -> int:
        return sum(e.estimated_tokens for e in self.entries)

    @property
    def is_fact(self) -> bool:
        return self.kind in FACT_KINDS


class LayerRef(BaseModel):
    """Provenance pointer to a layer."""

    model_config = {"frozen": True}

    scope: Scope
    key: str
    source: str


class Layer(BaseModel):
    """A scoped bundle of context, instruction, and memory sections."""

    model_config = {"frozen": True}

    scope: Scope
    key: str
    sections: tuple[Section, ...] = ()
    modified: datetime
    content_hash: str
    pinned: bool = False
    source: str

    @property
    def tokens(self) -> int:
        return sum(s.tokens for s in self.sections)

    @property
    def ref(self) -> LayerRef:
        return LayerRef(scope=self.scope, key=self.key, source=self.source)

    def with_sections(self, sections: tuple[Section, ...]) -> Layer:
        """Copy with replaced sections; the content hash stays the source's."""
        return self.model_copy(update={"sections": sections})


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


def normalize_path(path: str) -> str:
    """Normalize a repository-relative path to forward slashes.

    Examples:
        >>> normalize_path("./src\\\\handlers/user.ts")
        'src/handlers/user.ts'
    """
    p = path.replace("\\", "/")
    while p.startswith("./"):
        p = p[2:]
    return p.lstrip("/")


class ResolutionRequest(BaseModel):
    """Coordinates of one agent task."""

    model_config = {"frozen": True}

    file_path: str | None = None
    domain: str | None = None
    project: str | None = None
    feature: str | None = None
    task_type: str = "general"
    budget_tokens: int = Field(gt=0)
    as_of: datetime | None = None

    @field_validator("file_path")
    @classmethod
    def _normalize_file_path(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = normalize_path(value)
        return normalized or None

    def signature(self) -> str:
        """Stable hash of every field that can change the bundle."""
        payload = self.model_dump(mode="json")
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


class ChainLink(BaseModel):
    """One layer of a resolved chain, after archival and trimming."""

    model_config = {"frozen": True}

    scope: Scope
    key: str
    source: str
    content_hash: str
    sections_included: tuple[Section, ...] = ()
    entries_trimmed_count: int = 0
    entries_archived_count: int = 0
    tokens: int = 0
    omitted: bool = False

    @property
    def ref(self) -> LayerRef:
        return LayerRef(scope=self.scope, key=self.key, source=self.source)


class SupersededValue(BaseModel):
    """A fact value overridden by a more specific layer."""

    model_config = {"frozen": True}

    entry_id: str
    value: str
    layer: LayerRef
    superseded_by: str
    superseded_by_scope: Scope


class MergedFact(BaseModel):
    """The winning value for a context/instruction key, with history."""

    model_config = {"frozen": True}

    key: str
    kind: SectionKind
    value: str
    entry_id: str
    source: LayerRef
    superseded: tuple[SupersededValue, ...] = ()


class MemoryRecord(BaseModel):
    """A memory entry tagged with the layer it came from."""

    model_config = {"frozen": True}

    entry: Entry
    layer: LayerRef


class ResolvedBundle(BaseModel):
    """Merged, budget-fitted output of one resolution."""

    model_config = {"frozen": True}

    request_signature: str
    snapshot_id: int
    snapshot_hash: str
    chain: tuple[ChainLink, ...]
    total_tokens: int
    budget_tokens: int
    truncated: bool
    merged_facts: dict[str, MergedFact] = Field(default_factory=dict)
    memory: tuple[MemoryRecord, ...] = ()
    dropped_facts: tuple[str, ...] = ()
    archived_count: int = 0
