"""Layer Store: immutable snapshots with atomic swap.

A :class:`LayerSnapshot` is built completely off to the side and then
published by a single reference assignment. Readers call
:meth:`LayerStore.snapshot` and use the returned object for a whole
resolution, so they never see a mix of two snapshots and never wait on a
reload in progress. Reloads are serialized by a writer lock.

Load modes:
  strict   any invalid layer fails the whole reload; the previous
           snapshot stays current (all-or-nothing)
  relaxed  invalid layers are skipped and recorded as warnings
"""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from ctxctl.domain.content import build_layer
from ctxctl.domain.errors import LayerLoadError
from ctxctl.domain.matcher import PathMatcher
from ctxctl.domain.models import Layer
from ctxctl.domain.types import GLOBAL_KEY, SCOPE_ORDER, Scope
from ctxctl.infrastructure.sources import LayerSource

log = structlog.get_logger(__name__)

_SCOPE_RANK = {scope: i for i, scope in enumerate(SCOPE_ORDER)}


def _layer_order(layer: Layer) -> tuple[int, str, str]:
    return (_SCOPE_RANK[layer.scope], layer.key, layer.source)


@dataclass(frozen=True)
class LayerSnapshot:
    """Read-only view of every layer loaded by one reload."""

    id: int
    hash: str
    layers: tuple[Layer, ...]
    matcher: PathMatcher
    source: str = ""
    warnings: tuple[str, ...] = ()
    loaded_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    _named: dict[tuple[Scope, str], Layer] = field(default_factory=dict, repr=False)

    @classmethod
    def build(
        cls,
        snapshot_id: int,
        layers: Iterable[Layer],
        *,
        source: str = "",
        warnings: Iterable[str] = (),
    ) -> LayerSnapshot:
        ordered = tuple(sorted(layers, key=_layer_order))
        named = {(layer.scope, layer.key): layer for layer in ordered if layer.scope != Scope.PATH}
        return cls(
            id=snapshot_id,
            hash=snapshot_hash(ordered),
            layers=ordered,
            matcher=PathMatcher(ordered),
            source=source,
            warnings=tuple(warnings),
            _named=named,
        )

    @classmethod
    def empty(cls) -> LayerSnapshot:
        return cls.build(0, ())

    @property
    def global_layer(self) -> Layer | None:
        return self._named.get((Scope.GLOBAL, GLOBAL_KEY))

    def get(self, scope: Scope, key: str) -> Layer | None:
        """Named layer lookup (global/domain/project/feature)."""
        return self._named.get((scope, key))

    def by_scope(self, scope: Scope) -> list[Layer]:
        return [layer for layer in self.layers if layer.scope == scope]

    def __len__(self) -> int:
        return len(self.layers)


def snapshot_hash(layers: Iterable[Layer]) -> str:
    """Hash of the contributing layers' sources and content hashes."""
    digest = hashlib.sha256()
    for layer in sorted(layers, key=lambda layer: layer.source):
        digest.update(layer.source.encode("utf-8"))
        digest.update(b"\0")
        digest.update(layer.content_hash.encode("ascii"))
        digest.update(b"\n")
    return digest.hexdigest()


class LayerStore:
    """Holds the current :class:`LayerSnapshot`.

    Parameters:
        strict: Reject a whole reload on the first invalid layer. When
            False, skip invalid layers and record warnings instead.
    """

    def __init__(self, *, strict: bool = True) -> None:
        self.strict = strict
        self._snapshot = LayerSnapshot.empty()
        self._reload_lock = threading.Lock()
        self._last_id = 0

    def snapshot(self) -> LayerSnapshot:
        """The current snapshot. Never blocks."""
        return self._snapshot

    def reload(self, source: LayerSource) -> LayerSnapshot:
        """Load every layer from *source* and swap it in atomically.

        A reload that yields the same layers, source, and warnings as the
        current snapshot keeps it, id included.

        Raises:
            LayerLoadError: in strict mode, for the first invalid layer;
                in any mode, when the source itself cannot be read.
        """
        with self._reload_lock:
            layers, warnings = self.load_layers(source)
            current = self._snapshot
            if (
                current.id
                and current.hash == snapshot_hash(layers)
                and current.source == source.name
                and current.warnings == tuple(warnings)
            ):
                log.debug("store.reload_unchanged", snapshot_id=current.id, source=source.name)
                return current
            snapshot = LayerSnapshot.build(
                self._last_id + 1,
                layers,
                source=source.name,
                warnings=warnings,
            )
            self._last_id = snapshot.id
            self._snapshot = snapshot

        log.info(
            "store.reload",
            snapshot_id=snapshot.id,
            layers=len(snapshot),
            skipped=len(warnings),
            source=source.name,
        )
        return snapshot

    def load_layers(
        self,
        source: LayerSource,
        *,
        strict: bool | None = None,
    ) -> tuple[list[Layer], list[str]]:
        """Build and validate layers without publishing a snapshot.

        *strict* overrides the store's load mode for this call only.
        """
        strict = self.strict if strict is None else strict
        documents = sorted(source.documents(), key=lambda d: d.source)
        layers: list[Layer] = []
        warnings: list[str] = []
        seen_keys: dict[tuple[Scope, str], str] = {}
        seen_sources: set[str] = set()

        for doc in documents:
            try:
                if doc.source in seen_sources:
                    raise LayerLoadError(None, "duplicate source name", source=doc.source)
                layer = build_layer(doc)
                if layer.scope != Scope.PATH:
                    other = seen_keys.get((layer.scope, layer.key))
                    if other is not None:
                        raise LayerLoadError(
                            layer.key,
                            f"duplicate {layer.scope} key (already defined in {other})",
                            source=doc.source,
                        )
            except LayerLoadError as exc:
                if strict:
                    log.warning("store.reload_rejected", error=str(exc), source=exc.source)
                    raise
                log.warning("store.layer_skipped", error=str(exc), source=exc.source)
                warnings.append(str(exc))
                continue

            seen_sources.add(doc.source)
            if layer.scope != Scope.PATH:
                seen_keys[(layer.scope, layer.key)] = doc.source
            layers.append(layer)

        return layers, warnings
