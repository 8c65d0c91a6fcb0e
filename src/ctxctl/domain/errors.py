"""Typed errors raised by the engine.

Load-time errors surface only from a store reload; resolution-time errors
surface from a resolve call and are never retried inside the engine.
"""

from __future__ import annotations

from typing import Any


class CtxError(Exception):
    """Base class for all ctxctl errors."""

    code = "CTX_ERROR"

    def detail(self) -> dict[str, Any]:
        """Structured payload for the service error contract."""
        return {}


class GlobError(ValueError):
    """A path pattern could not be compiled."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid glob {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class LayerLoadError(CtxError):
    """A layer document is malformed or conflicts with another layer."""

    code = "LAYER_LOAD_ERROR"

    def __init__(self, key: str | None, reason: str, *, source: str | None = None) -> None:
        where = f" ({source})" if source else ""
        super().__init__(f"Layer {key or '<unknown>'!r}{where}: {reason}")
        self.key = key
        self.reason = reason
        self.source = source

    def detail(self) -> dict[str, Any]:
        return {"key": self.key, "source": self.source, "reason": self.reason}


class MissingMandatoryLayerError(CtxError):
    """The snapshot holds no global layer."""

    code = "MISSING_GLOBAL_LAYER"

    def __init__(self, snapshot_id: int) -> None:
        super().__init__(f"No global layer in snapshot {snapshot_id}")
        self.snapshot_id = snapshot_id

    def detail(self) -> dict[str, Any]:
        return {"snapshot_id": self.snapshot_id}


class BudgetExceededError(CtxError):
    """The mandatory floor alone does not fit the requested budget."""

    code = "BUDGET_EXCEEDED"

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            f"Mandatory global context needs {required} tokens but the budget is {available}"
        )
        self.required = required
        self.available = available

    def detail(self) -> dict[str, Any]:
        return {"required": self.required, "available": self.available}
