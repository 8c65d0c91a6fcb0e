"""Layer sources: where layer documents come from.

All disk I/O of the engine happens here, during a store reload. A source
yields :class:`LayerDocument` objects; turning them into validated layers
is the store's job so that strict and relaxed loading share one path.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from ctxctl.domain.content import LayerDocument, parse_frontmatter
from ctxctl.domain.errors import LayerLoadError

logger = logging.getLogger(__name__)

LAYER_SUFFIX = ".md"

# Directories to skip when discovering layer documents.
_SKIP_DIRS = frozenset({".git", ".ctxctl", "node_modules", "__pycache__"})


class LayerSource(Protocol):
    """Anything that can enumerate layer documents."""

    @property
    def name(self) -> str: ...

    def documents(self) -> Iterator[LayerDocument]: ...


# ---------------------------------------------------------------------------
# Directory of markdown documents
# ---------------------------------------------------------------------------


def find_layer_files(root: Path) -> list[Path]:
    """All ``*.md`` files under *root*, sorted, skipping VCS/cache dirs."""
    results: list[Path] = []
    for path in root.rglob(f"*{LAYER_SUFFIX}"):
        if not path.is_file():
            continue
        rel_parts = path.relative_to(root).parts
        if any(part in _SKIP_DIRS for part in rel_parts):
            continue
        results.append(path)
    return sorted(results)


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)


class DirectorySource:
    """Markdown layer documents under a root directory.

    Files without front-matter are not layer documents and are skipped
    (READMEs and notes can live beside layers). A file whose front-matter
    does not parse is yielded with its error so the store can reject or
    skip it according to its load mode.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def name(self) -> str:
        return str(self.root)

    def documents(self) -> Iterator[LayerDocument]:
        if not self.root.is_dir():
            raise LayerLoadError(None, f"layer directory not found: {self.root}")

        for path in find_layer_files(self.root):
            source = path.relative_to(self.root).as_posix()
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                yield LayerDocument(source=source, error=f"unreadable: {exc}")
                continue

            if not text.lstrip("\ufeff").startswith("---"):
                logger.debug("Skipping %s: no front-matter", source)
                continue

            try:
                frontmatter, body = parse_frontmatter(text.lstrip("\ufeff"))
            except ValueError as exc:
                yield LayerDocument(source=source, error=str(exc))
                continue

            yield LayerDocument(
                source=source,
                frontmatter=frontmatter,
                body=body,
                modified=_mtime(path),
            )


# ---------------------------------------------------------------------------
# In-memory mappings
# ---------------------------------------------------------------------------


class MappingSource:
    """Layer documents given as plain mappings.

    Each mapping holds front-matter keys (``scope``, ``key``, ``modified``,
    ``pinned``, ``sections``) plus optional ``body`` and ``source``.
    """

    def __init__(self, documents: Sequence[Mapping[str, Any]], *, name: str = "mapping") -> None:
        self._documents = list(documents)
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def documents(self) -> Iterator[LayerDocument]:
        for i, raw in enumerate(self._documents):
            data = dict(raw)
            source = str(data.pop("source", f"{self._name}:{i}"))
            body = str(data.pop("body", ""))
            yield LayerDocument(source=source, frontmatter=data, body=body)
