"""Layer documents: front-matter + body parsing into :class:`Layer` models.

A layer document is markdown with YAML front-matter::

    ---
    scope: path
    key: "src/handlers/**"
    modified: 2026-03-01
    pinned: false
    ---
    ## Context
    - caching-strategy: Use write-through caching.
    - [priority=1] error-style: Raise typed errors.

    ## Memory
    - [2026-02-01 pinned] Migrated handlers to v2.

Sections may instead be given as structured data under a ``sections``
front-matter key (the same shape :class:`MappingSource` accepts).

Entry tags (the optional ``[...]`` block at the start of a bullet):
  ``YYYY-MM-DD`` / ISO timestamp   creation time
  ``pinned``                       exempt from archival and trimming
  ``priority=N``                   lower is more important
  ``tokens=N``                     explicit token estimate
  ``id=X``                         explicit entry id
  ``task=T``                       only for requests of task type T (repeatable)

A bracket block with any other token is plain text, not tags.

Pure parsing only; file I/O lives in :mod:`ctxctl.infrastructure.sources`.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ctxctl.domain.errors import GlobError, LayerLoadError
from ctxctl.domain.globs import compile_glob
from ctxctl.domain.models import Entry, Layer, Section
from ctxctl.domain.types import GLOBAL_KEY, Scope, SectionKind

_FRONTMATTER_DELIMITER = "---"

_HEADING_RE = re.compile(r"^#{1,6}\s+(.+?)\s*#*\s*$")
_BULLET_RE = re.compile(r"^[-*+]\s+(.*)$")
_TAGS_RE = re.compile(r"^\[([^\]]*)\](?:\s+|$)(.*)$", re.DOTALL)
_FACT_RE = re.compile(r"^[`*]*([\w][\w.\-/]*)[`*]*\s*:\s*(.*)$", re.DOTALL)
_TAG_SPLIT_RE = re.compile(r"[\s,]+")
_VALUE_TAGS = frozenset({"priority", "tokens", "id", "task"})
_BOOL_STRINGS = {"true": True, "false": False, "yes": True, "no": False}

_SECTION_HEADINGS: dict[str, SectionKind] = {
    "context": SectionKind.CONTEXT,
    "contexts": SectionKind.CONTEXT,
    "instruction": SectionKind.INSTRUCTION,
    "instructions": SectionKind.INSTRUCTION,
    "memory": SectionKind.MEMORY,
    "memories": SectionKind.MEMORY,
}


def _new_yaml() -> YAML:
    """Create a fresh round-trip YAML parser.

    ruamel.yaml's YAML object is stateful; a new instance per call keeps a
    failed load from leaking into the next one.
    """
    y = YAML()
    y.preserve_quotes = True
    return y


def estimate_tokens(text: str) -> int:
    """Rough token count estimate (chars/4).

    Only used when a document does not state ``tokens=N`` explicitly.
    """
    return max(1, len(text) // 4)


@dataclass(frozen=True)
class LayerDocument:
    """A raw layer document as read from a source."""

    source: str
    frontmatter: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    modified: datetime | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Front-matter
# ---------------------------------------------------------------------------


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Parse YAML front-matter and body from markdown content.

    Expects the document to start with ``---``; the second ``---`` closes
    the YAML block. Handles ``\\n`` and ``\\r\\n`` line endings.

    Returns:
        ``(frontmatter, body)``. Without valid delimiters, ``({}, content)``.

    Raises:
        ValueError: the YAML block does not parse or is not a mapping.
    """
    normalized = content.replace("\r\n", "\n")
    lines = normalized.split("\n")
    if not lines or lines[0].strip() != _FRONTMATTER_DELIMITER:
        return {}, content

    end_idx: int | None = None
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == _FRONTMATTER_DELIMITER:
            end_idx = i
            break

    if end_idx is None:
        return {}, content

    yaml_block = "\n".join(lines[1:end_idx])
    body = "\n".join(lines[end_idx + 1 :])
    if body.startswith("\n"):
        body = body[1:]

    try:
        fm = _new_yaml().load(yaml_block) or {}
    except YAMLError as exc:
        msg = f"invalid YAML front-matter: {exc}"
        raise ValueError(msg) from exc
    if not isinstance(fm, Mapping):
        msg = "front-matter must be a mapping"
        raise ValueError(msg)
    return dict(fm), body


# ---------------------------------------------------------------------------
# Layer construction
# ---------------------------------------------------------------------------


def build_layer(doc: LayerDocument) -> Layer:
    """Validate a document and build its :class:`Layer`.

    Raises:
        LayerLoadError: missing/invalid scope, missing key, invalid glob,
            malformed entries, or no usable ``modified`` timestamp.
    """
    fm = doc.frontmatter
    raw_key = fm.get("key")
    key = str(raw_key).strip() if raw_key is not None else None

    if doc.error is not None:
        raise LayerLoadError(key, doc.error, source=doc.source)

    raw_scope = fm.get("scope")
    if raw_scope is None or str(raw_scope).strip() == "":
        raise LayerLoadError(key, "missing scope", source=doc.source)
    try:
        scope = Scope(str(raw_scope).strip().lower())
    except ValueError:
        raise LayerLoadError(key, f"unknown scope {raw_scope!r}", source=doc.source) from None

    if scope == Scope.GLOBAL:
        if key not in (None, "", GLOBAL_KEY):
            raise LayerLoadError(key, "global layer key must be 'global'", source=doc.source)
        key = GLOBAL_KEY
    elif not key:
        raise LayerLoadError(None, f"{scope} layer is missing a key", source=doc.source)

    if scope == Scope.PATH:
        try:
            key = compile_glob(key).pattern
        except GlobError as exc:
            raise LayerLoadError(key, exc.reason, source=doc.source) from exc

    try:
        modified = _coerce_datetime(fm.get("modified")) or doc.modified
    except ValueError as exc:
        raise LayerLoadError(key, str(exc), source=doc.source) from exc
    if modified is None:
        raise LayerLoadError(key, "missing modified timestamp", source=doc.source)

    try:
        if "sections" in fm:
            sections = _sections_from_data(fm["sections"], modified)
        else:
            sections = _sections_from_body(doc.body, modified)
        pinned = _coerce_bool(fm.get("pinned"), "pinned")
    except ValueError as exc:
        raise LayerLoadError(key, str(exc), source=doc.source) from exc

    return Layer(
        scope=scope,
        key=key,
        sections=sections,
        modified=modified,
        content_hash=content_hash(scope, key, pinned, modified, sections),
        pinned=pinned,
        source=doc.source,
    )


def content_hash(
    scope: Scope,
    key: str,
    pinned: bool,
    modified: datetime,
    sections: Sequence[Section],
) -> str:
    """SHA-256 over the canonical JSON form of a layer's content."""
    payload = {
        "scope": str(scope),
        "key": key,
        "pinned": pinned,
        "modified": modified.isoformat(),
        "sections": [s.model_dump(mode="json") for s in sections],
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Body parsing
# ---------------------------------------------------------------------------


def _sections_from_body(body: str, default_created: datetime) -> tuple[Section, ...]:
    builder = _SectionBuilder(default_created)
    kind: SectionKind | None = None
    current: list[str] | None = None

    def flush() -> None:
        nonlocal current
        if current is not None and kind is not None:
            builder.add_bullet(kind, " ".join(part for part in current if part))
        current = None

    for line in body.replace("\r\n", "\n").split("\n"):
        heading = _HEADING_RE.match(line)
        if heading:
            flush()
            kind = _SECTION_HEADINGS.get(heading.group(1).strip().lower())
            if kind is not None:
                builder.open(kind)
            continue
        if kind is None:
            continue
        bullet = _BULLET_RE.match(line)
        if bullet:
            flush()
            current = [bullet.group(1).strip()]
        elif current is not None and (line.startswith((" ", "\t")) or not line.strip()):
            current.append(line.strip())
        else:
            flush()
    flush()
    return builder.sections()


def _sections_from_data(data: Any, default_created: datetime) -> tuple[Section, ...]:
    if not isinstance(data, Sequence) or isinstance(data, str):
        msg = "'sections' must be a list"
        raise ValueError(msg)

    builder = _SectionBuilder(default_created)
    for raw in data:
        if not isinstance(raw, Mapping):
            msg = "each section must be a mapping"
            raise ValueError(msg)
        try:
            kind = SectionKind(str(raw.get("kind", "")).lower())
        except ValueError:
            msg = f"unknown section kind {raw.get('kind')!r}"
            raise ValueError(msg) from None
        builder.open(kind)
        for item in raw.get("entries") or []:
            if not isinstance(item, Mapping):
                msg = f"entries of a {kind} section must be mappings"
                raise ValueError(msg)
            tasks = item.get("tasks", item.get("task", ()))
            if isinstance(tasks, str):
                tasks = (tasks,)
            builder.add(
                kind,
                key=item.get("key"),
                payload=str(item.get("value", item.get("text", ""))),
                created_at=_coerce_datetime(item.get("created")),
                pinned=_coerce_bool(item.get("pinned"), "pinned"),
                priority=_opt_int(item.get("priority"), "priority"),
                tokens=_opt_int(item.get("tokens"), "tokens"),
                entry_id=str(item["id"]) if item.get("id") is not None else None,
                task_types=tuple(str(t) for t in tasks),
            )
    return builder.sections()


class _SectionBuilder:
    """Accumulates entries, assigning ids unique within one layer."""

    def __init__(self, default_created: datetime) -> None:
        self._default_created = default_created
        self._sections: list[tuple[SectionKind, list[Entry]]] = []
        self._ids: set[str] = set()
        self._memory_count = 0

    def open(self, kind: SectionKind) -> None:
        self._sections.append((kind, []))

    def sections(self) -> tuple[Section, ...]:
        return tuple(Section(kind=k, entries=tuple(es)) for k, es in self._sections)

    def add_bullet(self, kind: SectionKind, text: str) -> None:
        tags: dict[str, Any] = {"task_types": []}
        match = _TAGS_RE.match(text)
        if match:
            parsed = _parse_tags(match.group(1))
            if parsed is not None:
                tags.update(parsed)
                text = match.group(2).strip()

        key: str | None = None
        if kind != SectionKind.MEMORY:
            fact = _FACT_RE.match(text)
            if fact is None:
                msg = f"{kind} entry must read 'key: value', got {text[:40]!r}"
                raise ValueError(msg)
            key, text = fact.group(1), fact.group(2).strip()

        self.add(
            kind,
            key=key,
            payload=text,
            created_at=tags.get("created_at"),
            pinned=tags.get("pinned", False),
            priority=tags.get("priority"),
            tokens=tags.get("tokens"),
            entry_id=tags.get("id"),
            task_types=tuple(tags["task_types"]),
        )

    def add(
        self,
        kind: SectionKind,
        *,
        key: Any,
        payload: str,
        created_at: datetime | None,
        pinned: bool,
        priority: int | None,
        tokens: int | None,
        entry_id: str | None,
        task_types: tuple[str, ...],
    ) -> None:
        if not self._sections or self._sections[-1][0] != kind:
            self.open(kind)

        if kind == SectionKind.MEMORY:
            self._memory_count += 1
            key = None
            default_id = f"memory-{self._memory_count}"
            estimate_text = payload
        else:
            if key is None or str(key).strip() == "":
                msg = f"{kind} entry is missing a key"
                raise ValueError(msg)
            key = str(key).strip()
            default_id = key
            estimate_text = f"{key}: {payload}"

        if entry_id is not None:
            if entry_id in self._ids:
                msg = f"duplicate entry id {entry_id!r}"
                raise ValueError(msg)
        else:
            entry_id = default_id
            n = 2
            while entry_id in self._ids:
                entry_id = f"{default_id}~{n}"
                n += 1
        self._ids.add(entry_id)

        if tokens is not None and tokens < 0:
            msg = f"entry {entry_id!r} has negative tokens"
            raise ValueError(msg)

        self._sections[-1][1].append(
            Entry(
                id=entry_id,
                created_at=created_at or self._default_created,
                pinned=pinned,
                estimated_tokens=tokens if tokens is not None else estimate_tokens(estimate_text),
                priority=priority,
                key=key,
                payload=payload,
                task_types=task_types,
            )
        )


def _parse_tags(raw: str) -> dict[str, Any] | None:
    """Entry tags from a leading bracket block.

    None when any token is not a tag name, so text like ``[WIP]`` stays in
    the payload. A known tag with a bad value still raises ValueError.
    """
    tokens = [t for t in _TAG_SPLIT_RE.split(raw.strip()) if t]
    if not tokens or not all(_is_tag(t) for t in tokens):
        return None
    tags: dict[str, Any] = {"task_types": []}
    for token in tokens:
        name, sep, value = token.partition("=")
        if not sep and token.lower() == "pinned":
            tags["pinned"] = True
        elif not sep:
            tags["created_at"] = _coerce_datetime(token)
        elif name in ("priority", "tokens"):
            tags[name] = _opt_int(value, name)
        elif name == "id":
            tags["id"] = value
        else:
            tags["task_types"].append(value)
    return tags


def _is_tag(token: str) -> bool:
    name, sep, _ = token.partition("=")
    if sep:
        return name in _VALUE_TAGS
    return token.lower() == "pinned" or _coerce_datetime(token, strict=False) is not None


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _coerce_datetime(value: Any, *, strict: bool = True) -> datetime | None:
    """Normalize a YAML date/datetime/string to an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        if not strict:
            return None
        msg = f"invalid timestamp {value!r}"
        raise ValueError(msg) from None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _opt_int(value: Any, name: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        msg = f"{name} must be an integer, got {value!r}"
        raise ValueError(msg) from None


def _coerce_bool(value: Any, name: str) -> bool:
    """YAML booleans, or the strings true/false/yes/no; absent is False."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _BOOL_STRINGS:
        return _BOOL_STRINGS[value.strip().lower()]
    msg = f"{name} must be true or false, got {value!r}"
    raise ValueError(msg)
