"""CheckService: validate layer documents without publishing a snapshot.

Single command following the linter pattern. Layers are loaded in relaxed
mode so every problem is reported in one pass, and the current snapshot is
left untouched. Five categories: load errors, hierarchy, budget, content,
and path patterns.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any

from ctxctl.domain.archive import filter_sections
from ctxctl.domain.budget import floor_tokens
from ctxctl.domain.errors import LayerLoadError
from ctxctl.domain.models import Layer
from ctxctl.domain.types import GLOBAL_KEY, Scope
from ctxctl.infrastructure.sources import LayerSource
from ctxctl.services._helpers import layer_label, start_of_day
from ctxctl.services.base import BaseService
from ctxctl.services.contracts import CheckResultData, dump_validated
from ctxctl.services.result import ServiceResult
from ctxctl.services.telemetry import trace_span, traced

# ---------------------------------------------------------------------------
# Issue severity and category constants
# ---------------------------------------------------------------------------

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

CAT_LOAD = "load"
CAT_HIERARCHY = "hierarchy"
CAT_BUDGET = "budget"
CAT_CONTENT = "content"
CAT_PATH = "path_patterns"


def _issue(
    category: str,
    severity: str,
    message: str,
    source: str | None = None,
) -> dict[str, Any]:
    return {"category": category, "severity": severity, "source": source, "message": message}


# ---------------------------------------------------------------------------
# CheckService
# ---------------------------------------------------------------------------


class CheckService(BaseService):
    """Reports problems in the layer documents."""

    @traced
    def check(
        self,
        source: LayerSource | None = None,
        *,
        min_severity: str = SEVERITY_WARNING,
    ) -> ServiceResult:
        """Report layer issues without modifying the engine's snapshot.

        *min_severity* ``"error"`` hides warnings.
        """
        op = "check"
        source = source or self._engine.default_source()
        try:
            with trace_span("load") as span:
                layers, load_warnings = self._engine.store.load_layers(source, strict=False)
                if span:
                    span.annotate("layers", len(layers))
        except LayerLoadError as exc:
            return self._error_result(op, exc)

        issues: list[dict[str, Any]] = [
            _issue(CAT_LOAD, SEVERITY_ERROR, warning) for warning in load_warnings
        ]
        with trace_span("hierarchy"):
            issues.extend(self._check_hierarchy(layers))
        with trace_span("budget"):
            issues.extend(self._check_budget(layers))
        with trace_span("content"):
            issues.extend(self._check_content(layers))
        with trace_span("path_patterns"):
            issues.extend(self._check_paths(layers))

        if min_severity == SEVERITY_ERROR:
            issues = [i for i in issues if i["severity"] == SEVERITY_ERROR]

        error_count = sum(1 for i in issues if i["severity"] == SEVERITY_ERROR)
        data = dump_validated(
            CheckResultData,
            {
                "issues": issues,
                "count": len(issues),
                "error_count": error_count,
                "warning_count": len(issues) - error_count,
                "healthy": error_count == 0,
                "layers": len(layers),
            },
        )
        return ServiceResult(ok=True, op=op, data=data)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    @staticmethod
    def _check_hierarchy(layers: list[Layer]) -> list[dict[str, Any]]:
        if any(layer.scope == Scope.GLOBAL and layer.key == GLOBAL_KEY for layer in layers):
            return []
        return [
            _issue(
                CAT_HIERARCHY,
                SEVERITY_ERROR,
                "No global layer: every resolution will fail",
            )
        ]

    def _check_budget(self, layers: list[Layer]) -> list[dict[str, Any]]:
        default_budget = self._engine.settings.budget.default_tokens
        issues = []
        for layer in layers:
            if layer.scope != Scope.GLOBAL:
                continue
            floor = floor_tokens([layer])
            if floor > default_budget:
                issues.append(
                    _issue(
                        CAT_BUDGET,
                        SEVERITY_WARNING,
                        f"Global context needs {floor} tokens, "
                        f"more than the default budget of {default_budget}",
                        layer.source,
                    )
                )
        return issues

    def _check_content(self, layers: list[Layer]) -> list[dict[str, Any]]:
        retention = self._engine.settings.archive.retention_days
        today = start_of_day()
        issues = []
        for layer in layers:
            label = layer_label(layer.scope, layer.key)
            if not any(section.entries for section in layer.sections):
                issues.append(
                    _issue(CAT_CONTENT, SEVERITY_WARNING, f"{label} has no entries", layer.source)
                )
                continue
            if layer.pinned:
                continue
            _, archived = filter_sections(layer.sections, today, retention)
            if archived:
                issues.append(
                    _issue(
                        CAT_CONTENT,
                        SEVERITY_WARNING,
                        f"{label} has {archived} memory entries past the "
                        f"{retention}-day retention window",
                        layer.source,
                    )
                )
        return issues

    @staticmethod
    def _check_paths(layers: list[Layer]) -> list[dict[str, Any]]:
        sources: dict[str, list[str]] = defaultdict(list)
        for layer in layers:
            if layer.scope == Scope.PATH:
                sources[layer.key].append(layer.source)
        return [
            _issue(
                CAT_PATH,
                SEVERITY_WARNING,
                f"Pattern {pattern!r} is defined {len(found)} times: {', '.join(found)}",
                found[0],
            )
            for pattern, found in sorted(sources.items())
            if len(found) > 1
        ]
