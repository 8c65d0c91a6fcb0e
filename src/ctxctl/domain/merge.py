"""Key-level merge of a resolved chain ("most specific wins").

Override precedence, lowest to highest:
  global < domain < project < path (least → most specific) < feature

The chain itself lists path layers most specific first, so the path block
is reversed to obtain precedence order. Memory is never overridden; it is
concatenated in chain order, each record tagged with its layer.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass, field

from ctxctl.domain.models import (
    Entry,
    Layer,
    MemoryRecord,
    MergedFact,
    SupersededValue,
)
from ctxctl.domain.types import SCOPE_ORDER, Scope, SectionKind


@dataclass(frozen=True)
class MergeResult:
    facts: dict[str, MergedFact] = field(default_factory=dict)
    memory: tuple[MemoryRecord, ...] = ()


def precedence_order(chain: Sequence[Layer]) -> list[Layer]:
    """Reorder *chain* so that later layers override earlier ones."""
    by_scope: dict[Scope, list[Layer]] = {scope: [] for scope in SCOPE_ORDER}
    for layer in chain:
        by_scope[layer.scope].append(layer)
    by_scope[Scope.PATH].reverse()
    return [layer for scope in SCOPE_ORDER for layer in by_scope[scope]]


def merge_chain(chain: Sequence[Layer]) -> MergeResult:
    """Merge context/instruction facts and concatenate memory.

    Pure and order-stable: the same chain always yields an equal result,
    including dict ordering (keys appear in first-seen precedence order).
    """
    winners: dict[str, tuple[Entry, SectionKind, Layer]] = {}
    losers: dict[str, list[tuple[Entry, Layer]]] = {}

    for layer in precedence_order(chain):
        for section in layer.sections:
            if not section.is_fact:
                continue
            for entry in section.entries:
                if entry.key is None:
                    continue
                previous = winners.get(entry.key)
                if previous is not None:
                    losers.setdefault(entry.key, []).append((previous[0], previous[2]))
                winners[entry.key] = (entry, section.kind, layer)

    facts: dict[str, MergedFact] = {}
    for key, (entry, kind, layer) in winners.items():
        superseded = tuple(
            SupersededValue(
                entry_id=lost.id,
                value=lost.payload,
                layer=lost_layer.ref,
                superseded_by=layer.key,
                superseded_by_scope=layer.scope,
            )
            for lost, lost_layer in losers.get(key, [])
        )
        facts[key] = MergedFact(
            key=key,
            kind=kind,
            value=entry.payload,
            entry_id=entry.id,
            source=layer.ref,
            superseded=superseded,
        )

    memory = tuple(
        MemoryRecord(entry=entry, layer=layer.ref)
        for layer in chain
        for section in layer.sections
        if section.kind == SectionKind.MEMORY
        for entry in section.entries
    )
    return MergeResult(facts=facts, memory=memory)


def prune_merge(
    result: MergeResult,
    kept: Collection[tuple[str, str]],
) -> tuple[MergeResult, tuple[str, ...]]:
    """Drop facts and memory whose entries did not survive budget trimming.

    *kept* holds ``(layer source, entry id)`` pairs. A fact whose winning
    entry was trimmed is dropped outright rather than falling back to a
    less specific value. Returns the pruned result and the dropped keys.
    """
    facts: dict[str, MergedFact] = {}
    dropped: list[str] = []
    for key, fact in result.facts.items():
        if (fact.source.source, fact.entry_id) not in kept:
            dropped.append(key)
            continue
        superseded = tuple(
            s for s in fact.superseded if (s.layer.source, s.entry_id) in kept
        )
        if len(superseded) != len(fact.superseded):
            fact = fact.model_copy(update={"superseded": superseded})
        facts[key] = fact

    memory = tuple(m for m in result.memory if (m.layer.source, m.entry.id) in kept)
    return MergeResult(facts=facts, memory=memory), tuple(dropped)
