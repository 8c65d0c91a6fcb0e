"""Budget Allocator: greedy, deterministic trimming to a token budget.

The global layer's context and instruction sections are the mandatory
floor and are never trimmed. The rest of the budget is handed out scope by
scope in *fill order* (most specific first by default). A layer that fits
is kept whole; one that does not is trimmed:

  1. unpinned memory entries, oldest first
  2. unpinned context/instruction entries, lowest priority first

If its pinned residue still does not fit, or nothing is left, the layer is
omitted.

This is not an optimal packing. Same inputs always trim the same entries.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC

from ctxctl.domain.errors import BudgetExceededError
from ctxctl.domain.models import Entry, Layer, Section
from ctxctl.domain.types import DEFAULT_FILL_ORDER, SCOPE_ORDER, Scope, SectionKind


@dataclass(frozen=True)
class LayerAllocation:
    """What one layer keeps after allocation."""

    layer: Layer
    sections: tuple[Section, ...]
    trimmed: int
    tokens: int
    omitted: bool = False


@dataclass(frozen=True)
class Allocation:
    """Result of :func:`allocate`, in chain order."""

    layers: tuple[LayerAllocation, ...]
    total_tokens: int
    truncated: bool
    floor_tokens: int


def floor_tokens(chain: Sequence[Layer]) -> int:
    """Token cost of the mandatory floor (global context + instructions)."""
    return sum(
        section.tokens
        for layer in chain
        if layer.scope == Scope.GLOBAL
        for section in layer.sections
        if section.is_fact
    )


def validate_fill_order(fill_order: Sequence[Scope | str]) -> tuple[Scope, ...]:
    """Coerce *fill_order* to scopes and require a permutation of all five."""
    order = tuple(Scope(s) for s in fill_order)
    if sorted(order) != sorted(SCOPE_ORDER):
        msg = f"fill order must list each scope exactly once, got {[str(s) for s in order]}"
        raise ValueError(msg)
    return order


def allocate(
    chain: Sequence[Layer],
    budget_tokens: int,
    *,
    fill_order: Sequence[Scope | str] = DEFAULT_FILL_ORDER,
) -> Allocation:
    """Fit *chain* into *budget_tokens*.

    Raises:
        BudgetExceededError: the mandatory floor alone exceeds the budget.
    """
    if budget_tokens <= 0:
        msg = f"budget_tokens must be > 0, got {budget_tokens}"
        raise ValueError(msg)
    order = validate_fill_order(fill_order)

    floor = floor_tokens(chain)
    if floor > budget_tokens:
        raise BudgetExceededError(required=floor, available=budget_tokens)

    remaining = budget_tokens - floor
    results: dict[int, LayerAllocation] = {}

    for scope in order:
        for index, layer in enumerate(chain):
            if layer.scope != scope:
                continue
            if scope == Scope.GLOBAL:
                alloc = _allocate_global(layer, remaining)
                remaining -= alloc.tokens - _fact_tokens(layer)
            else:
                alloc = _allocate_layer(layer, layer.sections, remaining)
                remaining -= alloc.tokens
            results[index] = alloc

    layers = tuple(results[i] for i in range(len(chain)))
    total = sum(a.tokens for a in layers)
    truncated = any(a.trimmed or a.omitted for a in layers)
    return Allocation(layers=layers, total_tokens=total, truncated=truncated, floor_tokens=floor)


# ---------------------------------------------------------------------------
# Per-layer fitting
# ---------------------------------------------------------------------------


def _fact_tokens(layer: Layer) -> int:
    return sum(s.tokens for s in layer.sections if s.is_fact)


def _allocate_global(layer: Layer, capacity: int) -> LayerAllocation:
    """Keep the floor sections whole; fit memory into *capacity*."""
    memory = tuple(s for s in layer.sections if s.kind == SectionKind.MEMORY)
    fitted = _allocate_layer(layer, memory, capacity)
    fitted_memory = iter(fitted.sections) if not fitted.omitted else None

    sections: list[Section] = []
    for section in layer.sections:
        if section.is_fact:
            sections.append(section)
        elif fitted_memory is not None:
            sections.append(next(fitted_memory))
    return LayerAllocation(
        layer=layer,
        sections=tuple(sections),
        trimmed=fitted.trimmed,
        tokens=sum(s.tokens for s in sections),
    )


def _allocate_layer(
    layer: Layer,
    sections: tuple[Section, ...],
    capacity: int,
) -> LayerAllocation:
    cost = sum(s.tokens for s in sections)
    if cost <= capacity:
        return LayerAllocation(layer=layer, sections=sections, trimmed=0, tokens=cost)

    dropped: set[tuple[int, int]] = set()
    for pos, entry in _drop_order(sections):
        if cost <= capacity:
            break
        dropped.add(pos)
        cost -= entry.estimated_tokens

    total_entries = sum(len(s.entries) for s in sections)
    if cost > capacity or len(dropped) == total_entries:
        return LayerAllocation(
            layer=layer, sections=(), trimmed=total_entries, tokens=0, omitted=True
        )

    kept = tuple(
        Section(
            kind=section.kind,
            entries=tuple(e for j, e in enumerate(section.entries) if (i, j) not in dropped),
        )
        for i, section in enumerate(sections)
    )
    return LayerAllocation(layer=layer, sections=kept, trimmed=len(dropped), tokens=cost)


def _drop_order(sections: tuple[Section, ...]) -> list[tuple[tuple[int, int], Entry]]:
    """Trimmable entries in the order they are dropped.

    Pinned and zero-cost entries are never candidates.
    """
    memory: list[tuple[tuple[int, int], Entry]] = []
    facts: list[tuple[tuple[int, int], Entry]] = []
    for i, section in enumerate(sections):
        for j, entry in enumerate(section.entries):
            if entry.pinned or entry.estimated_tokens == 0:
                continue
            if section.kind == SectionKind.MEMORY:
                memory.append(((i, j), entry))
            else:
                facts.append(((i, j), entry))

    memory.sort(key=lambda item: (_utc(item[1]), item[0]))
    # Lowest priority is the largest effective number; later insertion breaks ties.
    facts.sort(key=lambda item: (-_effective_priority(item), -item[0][0], -item[0][1]))
    return memory + facts


def _effective_priority(item: tuple[tuple[int, int], Entry]) -> int:
    (_, index), entry = item
    return entry.priority if entry.priority is not None else index


def _utc(entry: Entry) -> float:
    created = entry.created_at
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    return created.timestamp()
