"""Layer scopes and section kinds.

Scope order encodes the global → domain → project → path → feature
hierarchy; later scopes are more specific.
"""

from __future__ import annotations

from enum import StrEnum


class Scope(StrEnum):
    """Hierarchy level a layer belongs to."""

    GLOBAL = "global"
    DOMAIN = "domain"
    PROJECT = "project"
    PATH = "path"
    FEATURE = "feature"


class SectionKind(StrEnum):
    """Kinds of content a layer section may hold."""

    CONTEXT = "context"
    MEMORY = "memory"
    INSTRUCTION = "instruction"


# Least specific first.
SCOPE_ORDER: tuple[Scope, ...] = (
    Scope.GLOBAL,
    Scope.DOMAIN,
    Scope.PROJECT,
    Scope.PATH,
    Scope.FEATURE,
)

# Scopes whose layers are addressed by a unique name in the request.
NAMED_SCOPES: frozenset[Scope] = frozenset({Scope.DOMAIN, Scope.PROJECT, Scope.FEATURE})

# Context and instruction entries are keyed facts; memory is additive history.
FACT_KINDS: frozenset[SectionKind] = frozenset({SectionKind.CONTEXT, SectionKind.INSTRUCTION})

GLOBAL_KEY = "global"

DEFAULT_FILL_ORDER: tuple[Scope, ...] = (
    Scope.FEATURE,
    Scope.PATH,
    Scope.PROJECT,
    Scope.DOMAIN,
    Scope.GLOBAL,
)
