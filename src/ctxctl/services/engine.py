"""ContextEngine: the resolution engine's public face.

Owns the :class:`LayerStore`, the :class:`BundleCache`, and a stateless
:class:`Resolver`. This is the library API:

- :meth:`ContextEngine.resolve` returns a :class:`ResolvedBundle` or raises
  a typed error (``MissingMandatoryLayerError``, ``BudgetExceededError``)
- :meth:`ContextEngine.reload` swaps in a new snapshot or raises
  ``LayerLoadError``

Services in this package wrap it into ``ServiceResult`` payloads for the
CLI. Each engine is safe to share between threads.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from ctxctl.infrastructure.cache import BundleCache
from ctxctl.infrastructure.sources import DirectorySource, LayerSource
from ctxctl.infrastructure.store import LayerSnapshot, LayerStore
from ctxctl.services._helpers import start_of_day
from ctxctl.services.resolver import Resolver

if TYPE_CHECKING:
    from ctxctl.config.settings import CtxSettings
    from ctxctl.domain.models import ResolutionRequest, ResolvedBundle

log = structlog.get_logger(__name__)


class ContextEngine:
    """Resolve requests against the current layer snapshot, with caching.

    Parameters:
        settings: Configuration; defaults are used when omitted.
        store: Pre-built store (tests inject one); otherwise created from
            ``settings.store.strict``.
        cache: Pre-built cache; otherwise sized by ``settings.cache``.
    """

    def __init__(
        self,
        settings: CtxSettings | None = None,
        *,
        store: LayerStore | None = None,
        cache: BundleCache | None = None,
    ) -> None:
        if settings is None:
            from ctxctl.config.settings import CtxSettings

            settings = CtxSettings()
        self.settings = settings
        self._store = store or LayerStore(strict=settings.store.strict)
        self._cache = cache or BundleCache(max_entries=settings.cache.max_entries)
        self._resolver = Resolver(
            retention_days=settings.archive.retention_days,
            fill_order=settings.budget.fill_order,
        )
        self._cache.invalidate(self._store.snapshot().hash)

    @property
    def store(self) -> LayerStore:
        return self._store

    @property
    def cache(self) -> BundleCache:
        return self._cache

    @property
    def resolver(self) -> Resolver:
        return self._resolver

    def snapshot(self) -> LayerSnapshot:
        return self._store.snapshot()

    def default_source(self) -> DirectorySource:
        return DirectorySource(self.settings.layer_root)

    def reload(self, source: LayerSource | None = None) -> int:
        """Load a new snapshot and drop cached bundles if its content changed.

        Returns the current snapshot id, unchanged when the content is.
        """
        snapshot = self._store.reload(source or self.default_source())
        dropped = self._cache.invalidate(snapshot.hash)
        if dropped:
            log.debug("cache.invalidated", snapshot_id=snapshot.id, dropped=dropped)
        return snapshot.id

    def resolve(self, request: ResolutionRequest) -> ResolvedBundle:
        """Resolve *request*; identical requests on one snapshot share a bundle."""
        if request.as_of is None:
            request = request.model_copy(update={"as_of": start_of_day()})
        snapshot = self._store.snapshot()
        key = (request.signature(), snapshot.hash)
        return self._cache.get_or_compute(key, lambda: self._resolver.resolve(snapshot, request))

    def ensure_loaded(self) -> LayerSnapshot:
        """Load the default source once if nothing has been loaded yet."""
        snapshot = self._store.snapshot()
        if snapshot.id == 0:
            self.reload()
            snapshot = self._store.snapshot()
        return snapshot
