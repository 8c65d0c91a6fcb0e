"""Path Matcher: rank path-scoped layers against a file path.

Ranking is deterministic:
  1. more literal (wildcard-free) pattern segments
  2. longer literal prefix
  3. lexicographically smaller pattern
  4. source name (patterns may repeat across documents)
"""

from __future__ import annotations

from collections.abc import Iterable

from ctxctl.domain.globs import GlobPattern, compile_glob
from ctxctl.domain.models import Layer, normalize_path
from ctxctl.domain.types import Scope


class PathMatcher:
    """Compiled, pre-ranked index of path layers.

    Layers are sorted once at construction, so :meth:`match` only filters.
    Construction raises :class:`~ctxctl.domain.errors.GlobError` for a
    malformed pattern; the store validates patterns before building one.
    """

    def __init__(self, layers: Iterable[Layer]) -> None:
        compiled: list[tuple[GlobPattern, Layer]] = []
        for layer in layers:
            if layer.scope != Scope.PATH:
                continue
            compiled.append((compile_glob(layer.key), layer))
        compiled.sort(key=lambda item: (*item[0].rank_key(), item[1].source))
        self._ranked = tuple(compiled)

    def __len__(self) -> int:
        return len(self._ranked)

    def match_layers(self, file_path: str | None) -> list[Layer]:
        """Path layers matching *file_path*, most specific first."""
        if not file_path:
            return []
        path = normalize_path(file_path)
        return [layer for glob, layer in self._ranked if glob.regex.fullmatch(path)]

    def match(self, file_path: str | None) -> list[str]:
        """Keys (patterns) of the matching path layers, most specific first."""
        return [layer.key for layer in self.match_layers(file_path)]

    def explain(self, file_path: str) -> list[dict[str, object]]:
        """Matching patterns with the measures used to rank them."""
        path = normalize_path(file_path)
        return [
            {
                "pattern": glob.pattern,
                "source": layer.source,
                "literal_segments": glob.literal_segments,
                "literal_prefix": glob.literal_prefix,
            }
            for glob, layer in self._ranked
            if glob.regex.fullmatch(path)
        ]
