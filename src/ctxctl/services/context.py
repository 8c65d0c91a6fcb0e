"""ContextService: resolve, reload, match, and list layers.

Wraps :class:`~ctxctl.services.engine.ContextEngine` for the CLI and other
adapters: typed engine errors become ``ServiceResult`` failures and
bundles become flat, validated payloads. The engine stays the library API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import ValidationError

from ctxctl.domain.errors import CtxError
from ctxctl.domain.models import ResolutionRequest, ResolvedBundle, normalize_path
from ctxctl.domain.types import Scope
from ctxctl.infrastructure.sources import LayerSource
from ctxctl.services._helpers import layer_label
from ctxctl.services.base import BaseService
from ctxctl.services.contracts import (
    LayerListResultData,
    MatchResultData,
    ReloadResultData,
    ResolveResultData,
    dump_validated,
)
from ctxctl.services.result import ServiceResult
from ctxctl.services.telemetry import trace_span, traced

INVALID_REQUEST = "INVALID_REQUEST"

# Share of the budget left over below which a bundle is reported as tight.
CAUTION_RATIO = 0.15


class ContextService(BaseService):
    """Service-layer front for resolution and layer inspection."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @traced
    def resolve(
        self,
        file_path: str | None = None,
        *,
        domain: str | None = None,
        project: str | None = None,
        feature: str | None = None,
        task_type: str | None = None,
        budget: int | None = None,
        as_of: datetime | None = None,
    ) -> ServiceResult:
        """Resolve one request → ServiceResult(op="resolve").

        *task_type* and *budget* fall back to ``[resolve]`` and
        ``[budget]`` configuration.
        """
        op = "resolve"
        settings = self._engine.settings
        try:
            request = ResolutionRequest(
                file_path=file_path,
                domain=domain,
                project=project,
                feature=feature,
                task_type=task_type or settings.resolve.default_task_type,
                budget_tokens=settings.budget.default_tokens if budget is None else budget,
                as_of=as_of,
            )
        except ValidationError as exc:
            return ServiceResult.failure(
                op,
                INVALID_REQUEST,
                "Invalid resolution request",
                detail={"errors": _validation_messages(exc)},
            )

        try:
            snapshot = self._engine.ensure_loaded()
            bundle = self._engine.resolve(request)
        except CtxError as exc:
            return self._error_result(op, exc)

        warnings = [f"Skipped layer: {w}" for w in snapshot.warnings]
        warnings.extend(_bundle_warnings(bundle))

        with trace_span("payload"):
            data = dump_validated(ResolveResultData, bundle_payload(bundle))
        return ServiceResult(ok=True, op=op, data=data, warnings=warnings)

    @traced
    def reload(self, source: LayerSource | None = None) -> ServiceResult:
        """Load a new snapshot → ServiceResult(op="reload")."""
        op = "reload"
        try:
            self._engine.reload(source)
        except CtxError as exc:
            return self._error_result(op, exc)

        snapshot = self._engine.snapshot()
        data = dump_validated(
            ReloadResultData,
            {
                "snapshot_id": snapshot.id,
                "snapshot_hash": snapshot.hash,
                "source": snapshot.source,
                "layers": len(snapshot),
                "skipped": len(snapshot.warnings),
                "cached": len(self._engine.cache),
            },
        )
        return ServiceResult(
            ok=True,
            op=op,
            data=data,
            warnings=[f"Skipped layer: {w}" for w in snapshot.warnings],
        )

    @traced
    def match(self, file_path: str) -> ServiceResult:
        """Rank the path layers matching *file_path* → ServiceResult(op="match")."""
        op = "match"
        try:
            snapshot = self._engine.ensure_loaded()
        except CtxError as exc:
            return self._error_result(op, exc)

        items = [
            {"rank": rank, **row}
            for rank, row in enumerate(snapshot.matcher.explain(file_path), start=1)
        ]
        data = dump_validated(
            MatchResultData,
            {"path": normalize_path(file_path), "count": len(items), "items": items},
        )
        return ServiceResult(ok=True, op=op, data=data)

    @traced
    def list_layers(self, scope: Scope | str | None = None) -> ServiceResult:
        """List the current snapshot's layers → ServiceResult(op="list_layers")."""
        op = "list_layers"
        if scope is not None:
            try:
                scope = Scope(scope)
            except ValueError:
                return ServiceResult.failure(
                    op,
                    INVALID_REQUEST,
                    f"Unknown scope: {scope}",
                    detail={"scope": str(scope), "valid": [s.value for s in Scope]},
                )
        try:
            snapshot = self._engine.ensure_loaded()
        except CtxError as exc:
            return self._error_result(op, exc)

        layers = snapshot.layers if scope is None else snapshot.by_scope(scope)
        items = [
            {
                "scope": layer.scope.value,
                "key": layer.key,
                "source": layer.source,
                "entries": sum(len(s.entries) for s in layer.sections),
                "tokens": layer.tokens,
                "pinned": layer.pinned,
                "modified": layer.modified.isoformat(),
                "content_hash": layer.content_hash,
            }
            for layer in layers
        ]
        data = dump_validated(
            LayerListResultData,
            {"snapshot_id": snapshot.id, "count": len(items), "items": items},
        )
        return ServiceResult(ok=True, op=op, data=data)


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def pressure(total: int, budget: int, truncated: bool) -> str:
    """``normal``, ``caution`` (under 15% left) or ``exceeded`` (trimmed)."""
    if truncated:
        return "exceeded"
    if budget - total < budget * CAUTION_RATIO:
        return "caution"
    return "normal"


def bundle_payload(bundle: ResolvedBundle) -> dict[str, Any]:
    """Flatten a bundle into the ``resolve`` payload shape."""
    chain = [
        {
            "scope": link.scope.value,
            "key": link.key,
            "source": link.source,
            "tokens": link.tokens,
            "entries": sum(len(s.entries) for s in link.sections_included),
            "trimmed": link.entries_trimmed_count,
            "archived": link.entries_archived_count,
            "omitted": link.omitted,
        }
        for link in bundle.chain
    ]
    facts = [
        {
            "key": fact.key,
            "kind": fact.kind.value,
            "value": fact.value,
            "scope": fact.source.scope.value,
            "layer": layer_label(fact.source.scope, fact.source.key),
            "superseded": [
                {
                    "value": old.value,
                    "layer": layer_label(old.layer.scope, old.layer.key),
                    "superseded_by": layer_label(old.superseded_by_scope, old.superseded_by),
                }
                for old in fact.superseded
            ],
        }
        for fact in bundle.merged_facts.values()
    ]
    memory = [
        {
            "id": record.entry.id,
            "text": record.entry.payload,
            "scope": record.layer.scope.value,
            "layer": layer_label(record.layer.scope, record.layer.key),
            "created_at": record.entry.created_at.isoformat(),
            "pinned": record.entry.pinned,
            "tokens": record.entry.estimated_tokens,
        }
        for record in bundle.memory
    ]
    return {
        "request_signature": bundle.request_signature,
        "snapshot_id": bundle.snapshot_id,
        "snapshot_hash": bundle.snapshot_hash,
        "total_tokens": bundle.total_tokens,
        "budget": bundle.budget_tokens,
        "remaining": bundle.budget_tokens - bundle.total_tokens,
        "pressure": pressure(bundle.total_tokens, bundle.budget_tokens, bundle.truncated),
        "truncated": bundle.truncated,
        "chain": chain,
        "facts": facts,
        "memory": memory,
        "dropped_facts": list(bundle.dropped_facts),
        "archived_count": bundle.archived_count,
    }


def _bundle_warnings(bundle: ResolvedBundle) -> list[str]:
    if not bundle.truncated:
        return []
    trimmed = sum(link.entries_trimmed_count for link in bundle.chain)
    warnings = [
        f"Bundle truncated to fit {bundle.budget_tokens} tokens ({trimmed} entries trimmed)"
    ]
    omitted = [layer_label(link.scope, link.key) for link in bundle.chain if link.omitted]
    if omitted:
        warnings.append(f"Omitted layers: {', '.join(omitted)}")
    if bundle.dropped_facts:
        warnings.append(f"Dropped facts: {', '.join(bundle.dropped_facts)}")
    return warnings


def _validation_messages(exc: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    ]
