"""Archive Filter: retention-based pruning of memory entries.

A pure function of ``(sections, as_of, retention_days)``. Context and
instruction entries describe current state and are never archived.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from ctxctl.domain.models import Entry, Section
from ctxctl.domain.types import SectionKind


def is_expired(entry: Entry, as_of: datetime, retention_days: int) -> bool:
    """True when *entry* is older than the retention window and not pinned."""
    if entry.pinned:
        return False
    return _aware(as_of) - _aware(entry.created_at) > timedelta(days=retention_days)


def filter_sections(
    sections: Iterable[Section],
    as_of: datetime,
    retention_days: int,
) -> tuple[tuple[Section, ...], int]:
    """Drop expired memory entries.

    Returns:
        ``(sections, archived_count)``. Sections left empty by archival
        are kept so the layer's shape is stable across calls.
    """
    if retention_days < 0:
        msg = f"retention_days must be >= 0, got {retention_days}"
        raise ValueError(msg)

    result: list[Section] = []
    archived = 0
    for section in sections:
        if section.kind != SectionKind.MEMORY:
            result.append(section)
            continue
        kept = tuple(e for e in section.entries if not is_expired(e, as_of, retention_days))
        archived += len(section.entries) - len(kept)
        if len(kept) == len(section.entries):
            result.append(section)
        else:
            result.append(Section(kind=section.kind, entries=kept))
    return tuple(result), archived


def _aware(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so comparisons never raise."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
