"""BaseService: abstract foundation for all ctxctl services.

Every service receives a :class:`ContextEngine` at construction time and
translates its typed errors into :class:`ServiceResult` failures.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ctxctl.domain.errors import CtxError
from ctxctl.services.result import ServiceResult

if TYPE_CHECKING:
    from ctxctl.services.engine import ContextEngine

logger = logging.getLogger(__name__)


class BaseService:
    """Abstract base for service-layer classes.

    Usage::

        class MatchService(BaseService):
            def match(self, path: str) -> ServiceResult:
                snapshot = self._engine.ensure_loaded()
                ...
    """

    def __init__(self, engine: ContextEngine) -> None:
        self._engine = engine

    @staticmethod
    def _error_result(op: str, exc: CtxError, warnings: list[str] | None = None) -> ServiceResult:
        """Convert a typed engine error into a failed ServiceResult."""
        logger.debug("%s failed: %s", op, exc)
        return ServiceResult.failure(
            op,
            exc.code,
            str(exc),
            detail=exc.detail(),
            warnings=warnings,
        )
