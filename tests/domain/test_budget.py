"""Tests for the budget allocator."""

from __future__ import annotations

import pytest

from ctxctl.domain.budget import allocate, floor_tokens, validate_fill_order
from ctxctl.domain.errors import BudgetExceededError
from ctxctl.domain.types import Scope
from tests.conftest import fact, facts, make_layer, memory


def _scenario_chain() -> list:
    return [
        make_layer("global", context=facts("g", 4, tokens=500)),
        make_layer("domain", "payments", context=facts("d", 6, tokens=500)),
        make_layer("project", "checkout", context=facts("p", 5, tokens=500)),
        make_layer("path", "src/handlers/**", context=facts("s", 3, tokens=500)),
    ]


class TestFloor:
    def test_floor_is_global_facts(self) -> None:
        chain = [
            make_layer(
                "global",
                context=[fact("a", tokens=300)],
                instructions=[fact("b", tokens=200)],
                memories=[memory("m", tokens=1000)],
            ),
            make_layer("project", "p", context=[fact("c", tokens=999)]),
        ]
        assert floor_tokens(chain) == 500

    def test_floor_exceeding_budget_fails(self) -> None:
        chain = [make_layer("global", context=facts("g", 4, tokens=500))]
        with pytest.raises(BudgetExceededError) as exc_info:
            allocate(chain, 1500)
        assert exc_info.value.required == 2000
        assert exc_info.value.available == 1500
        assert exc_info.value.detail() == {"required": 2000, "available": 1500}

    def test_floor_exactly_at_budget(self) -> None:
        chain = [
            make_layer("global", context=facts("g", 2, tokens=500)),
            make_layer("project", "p", context=facts("p", 1, tokens=10)),
        ]
        result = allocate(chain, 1000)
        assert result.total_tokens == 1000
        assert result.layers[1].omitted
        assert result.truncated


class TestFillOrder:
    def test_specific_layers_fill_first(self) -> None:
        result = allocate(_scenario_chain(), 5000)
        glob, domain, project, path = result.layers

        assert glob.tokens == 2000
        assert path.tokens == 1500 and path.trimmed == 0
        assert project.tokens == 1500 and project.trimmed == 2
        assert domain.omitted and domain.tokens == 0
        assert result.total_tokens == 5000
        assert result.truncated

    def test_trimmed_layer_drops_lowest_priority(self) -> None:
        result = allocate(_scenario_chain(), 5000)
        project = result.layers[2]
        kept = [e.key for s in project.sections for e in s.entries]
        assert kept == ["p-0", "p-1", "p-2"]

    def test_generous_budget_is_not_truncated(self) -> None:
        result = allocate(_scenario_chain(), 100_000)
        assert not result.truncated
        assert result.total_tokens == 9000
        assert all(a.trimmed == 0 and not a.omitted for a in result.layers)

    def test_custom_fill_order(self) -> None:
        order = ("domain", "project", "path", "feature", "global")
        result = allocate(_scenario_chain(), 5000, fill_order=order)
        glob, domain, project, path = result.layers
        assert domain.tokens == 3000
        assert project.omitted
        assert path.omitted

    def test_layers_keep_chain_order(self) -> None:
        chain = _scenario_chain()
        result = allocate(chain, 5000)
        assert [a.layer for a in result.layers] == chain

    def test_total_never_exceeds_budget(self) -> None:
        chain = _scenario_chain()
        for budget in (2000, 2499, 3000, 3501, 4999, 5000, 7777):
            result = allocate(chain, budget)
            assert result.total_tokens <= budget

    def test_invalid_fill_order(self) -> None:
        with pytest.raises(ValueError, match="fill order"):
            validate_fill_order(["path", "global"])

    def test_fill_order_accepts_strings(self) -> None:
        order = validate_fill_order(["global", "domain", "project", "path", "feature"])
        assert order[0] is Scope.GLOBAL

    def test_non_positive_budget_rejected(self) -> None:
        with pytest.raises(ValueError, match="budget_tokens"):
            allocate(_scenario_chain(), 0)


class TestTrimming:
    def test_memory_dropped_oldest_first_before_facts(self) -> None:
        chain = [
            make_layer("global"),
            make_layer(
                "project",
                "p",
                context=[fact("k", tokens=100)],
                memories=[
                    memory("newer", created="2026-05-01", tokens=100),
                    memory("older", created="2026-01-01", tokens=100),
                ],
            ),
        ]
        result = allocate(chain, 200)
        project = result.layers[1]
        kept = [e.payload for s in project.sections for e in s.entries]
        assert kept == ["k value", "newer"]
        assert project.trimmed == 1

    def test_explicit_priority_controls_fact_drop_order(self) -> None:
        chain = [
            make_layer("global"),
            make_layer(
                "project",
                "p",
                context=[
                    fact("keep", tokens=100, priority=0),
                    fact("drop", tokens=100, priority=9),
                    fact("middle", tokens=100, priority=5),
                ],
            ),
        ]
        result = allocate(chain, 200)
        kept = [e.key for s in result.layers[1].sections for e in s.entries]
        assert kept == ["keep", "middle"]

    def test_pinned_entries_survive_trimming(self) -> None:
        chain = [
            make_layer("global"),
            make_layer(
                "project",
                "p",
                context=[fact("pinned", tokens=100, pinned=True), fact("other", tokens=100)],
            ),
        ]
        result = allocate(chain, 150)
        kept = [e.key for s in result.layers[1].sections for e in s.entries]
        assert kept == ["pinned"]

    def test_pinned_residue_that_does_not_fit_omits_layer(self) -> None:
        chain = [
            make_layer("global"),
            make_layer("project", "p", context=[fact("pinned", tokens=300, pinned=True)]),
        ]
        result = allocate(chain, 200)
        assert result.layers[1].omitted
        assert result.layers[1].trimmed == 1
        assert result.total_tokens == 0

    def test_global_memory_is_trimmed_not_floor(self) -> None:
        chain = [
            make_layer(
                "global",
                context=[fact("g", tokens=100)],
                memories=[
                    memory("old", created="2026-01-01", tokens=100),
                    memory("new", tokens=100),
                ],
            ),
        ]
        result = allocate(chain, 250)
        glob = result.layers[0]
        assert not glob.omitted
        assert glob.tokens == 200
        assert [e.payload for s in glob.sections for e in s.entries] == ["g value", "new"]

    def test_global_memory_fully_dropped_keeps_floor(self) -> None:
        chain = [
            make_layer(
                "global",
                context=[fact("g", tokens=100)],
                memories=[memory("m", tokens=100)],
            ),
        ]
        result = allocate(chain, 150)
        glob = result.layers[0]
        assert not glob.omitted
        assert glob.tokens == 100
        assert glob.trimmed == 1
        assert result.truncated

    def test_allocation_is_deterministic(self) -> None:
        chain = _scenario_chain()
        assert allocate(chain, 4321) == allocate(chain, 4321)
