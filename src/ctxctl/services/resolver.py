"""Resolver: from a snapshot and a request to a budget-fitted bundle.

Pipeline, in order:
  1. chain     global, domain, project, path (most specific first), feature
  2. archive   task-type filtering, then retention-based memory pruning
  3. merge     context/instruction keys, most specific wins
  4. allocate  mandatory floor, then fill order, trimming as needed

The resolver holds configuration only; it has no mutable state and never
touches I/O, so it can be called from any number of threads at once.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from ctxctl.domain.archive import filter_sections
from ctxctl.domain.budget import Allocation, allocate, validate_fill_order
from ctxctl.domain.errors import MissingMandatoryLayerError
from ctxctl.domain.merge import merge_chain, prune_merge
from ctxctl.domain.models import (
    ChainLink,
    Layer,
    ResolutionRequest,
    ResolvedBundle,
    Section,
)
from ctxctl.domain.types import DEFAULT_FILL_ORDER, Scope
from ctxctl.infrastructure.store import LayerSnapshot
from ctxctl.services.telemetry import trace_span

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedLayer:
    """A chain layer after task filtering and archival."""

    layer: Layer
    archived: int


class Resolver:
    """Stateless resolution pipeline.

    Parameters:
        retention_days: Memory entries older than this are archived.
        fill_order: Scope order in which the budget above the floor is
            handed out.
    """

    def __init__(
        self,
        *,
        retention_days: int = 180,
        fill_order: Sequence[Scope | str] = DEFAULT_FILL_ORDER,
    ) -> None:
        if retention_days < 0:
            msg = f"retention_days must be >= 0, got {retention_days}"
            raise ValueError(msg)
        self.retention_days = retention_days
        self.fill_order = validate_fill_order(fill_order)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def resolve(self, snapshot: LayerSnapshot, request: ResolutionRequest) -> ResolvedBundle:
        """Resolve *request* against *snapshot*.

        ``request.as_of`` must already be set; the engine fills it in.

        Raises:
            MissingMandatoryLayerError: the snapshot has no global layer.
            BudgetExceededError: the global floor exceeds the budget.
        """
        if request.as_of is None:
            msg = "request.as_of must be set before resolution"
            raise ValueError(msg)

        with trace_span("chain") as span:
            chain = self.build_chain(snapshot, request)
            if span:
                span.annotate("layers", len(chain))

        with trace_span("archive") as span:
            prepared = [self._prepare(layer, request.task_type, request.as_of) for layer in chain]
            archived = sum(p.archived for p in prepared)
            if span:
                span.annotate("archived", archived)
        layers = [p.layer for p in prepared]

        with trace_span("merge") as span:
            merged = merge_chain(layers)
            if span:
                span.annotate("facts", len(merged.facts))

        with trace_span("allocate") as span:
            allocation = allocate(layers, request.budget_tokens, fill_order=self.fill_order)
            if span:
                span.tokens = allocation.total_tokens
                span.annotate("truncated", allocation.truncated)

        merged, dropped = prune_merge(merged, _kept_entries(allocation))

        links = tuple(
            ChainLink(
                scope=alloc.layer.scope,
                key=alloc.layer.key,
                source=alloc.layer.source,
                content_hash=alloc.layer.content_hash,
                sections_included=alloc.sections,
                entries_trimmed_count=alloc.trimmed,
                entries_archived_count=prep.archived,
                tokens=alloc.tokens,
                omitted=alloc.omitted,
            )
            for alloc, prep in zip(allocation.layers, prepared, strict=True)
        )

        return ResolvedBundle(
            request_signature=request.signature(),
            snapshot_id=snapshot.id,
            snapshot_hash=snapshot.hash,
            chain=links,
            total_tokens=allocation.total_tokens,
            budget_tokens=request.budget_tokens,
            truncated=allocation.truncated,
            merged_facts=merged.facts,
            memory=merged.memory,
            dropped_facts=dropped,
            archived_count=archived,
        )

    def build_chain(self, snapshot: LayerSnapshot, request: ResolutionRequest) -> list[Layer]:
        """Candidate chain for *request*, in chain order.

        Unknown domain/project/feature names are treated as absent layers.
        """
        global_layer = snapshot.global_layer
        if global_layer is None:
            raise MissingMandatoryLayerError(snapshot.id)

        chain = [global_layer]
        for scope, name in ((Scope.DOMAIN, request.domain), (Scope.PROJECT, request.project)):
            chain.extend(self._named(snapshot, scope, name))
        chain.extend(snapshot.matcher.match_layers(request.file_path))
        chain.extend(self._named(snapshot, Scope.FEATURE, request.feature))
        return chain

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _named(snapshot: LayerSnapshot, scope: Scope, name: str | None) -> list[Layer]:
        if not name:
            return []
        layer = snapshot.get(scope, name)
        if layer is None:
            logger.debug("No %s layer named %r; continuing without it", scope, name)
            return []
        return [layer]

    def _prepare(self, layer: Layer, task_type: str, as_of: datetime) -> PreparedLayer:
        sections = tuple(_for_task(s, task_type) for s in layer.sections)
        archived = 0
        if not layer.pinned:
            sections, archived = filter_sections(sections, as_of, self.retention_days)
        if sections != layer.sections:
            layer = layer.with_sections(sections)
        return PreparedLayer(layer=layer, archived=archived)


def _for_task(section: Section, task_type: str) -> Section:
    entries = tuple(e for e in section.entries if e.applies_to(task_type))
    if len(entries) == len(section.entries):
        return section
    return Section(kind=section.kind, entries=entries)


def _kept_entries(allocation: Allocation) -> set[tuple[str, str]]:
    return {
        (alloc.layer.source, entry.id)
        for alloc in allocation.layers
        for section in alloc.sections
        for entry in section.entries
    }
