"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, ctxctl.toml only contains
overrides. An empty ctxctl.toml next to a ``context/`` directory is a
complete setup.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from ctxctl.domain.budget import validate_fill_order
from ctxctl.domain.types import DEFAULT_FILL_ORDER, Scope


class StoreConfig(BaseModel):
    """[store] section."""

    model_config = {"frozen": True}

    root: str = "context"
    strict: bool = True


class ArchiveConfig(BaseModel):
    """[archive] section."""

    model_config = {"frozen": True}

    retention_days: int = Field(default=180, ge=0)


class BudgetConfig(BaseModel):
    """[budget] section."""

    model_config = {"frozen": True}

    default_tokens: int = Field(default=8000, gt=0)
    fill_order: tuple[Scope, ...] = DEFAULT_FILL_ORDER

    @field_validator("fill_order")
    @classmethod
    def _check_fill_order(cls, value: tuple[Scope, ...]) -> tuple[Scope, ...]:
        return validate_fill_order(value)


class CacheConfig(BaseModel):
    """[cache] section."""

    model_config = {"frozen": True}

    max_entries: int = Field(default=256, ge=0)


class ResolveConfig(BaseModel):
    """[resolve] section."""

    model_config = {"frozen": True}

    default_task_type: str = "general"

