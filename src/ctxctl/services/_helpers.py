"""Shared service-layer helper functions."""

from __future__ import annotations

from datetime import UTC, date, datetime


def start_of_day(day: date | None = None) -> datetime:
    """Midnight UTC of *day* (default: today).

    Requests without an explicit ``as_of`` resolve against this, so every
    call on the same day shares a request signature and a cache entry.
    """
    d = day or datetime.now(UTC).date()
    return datetime(d.year, d.month, d.day, tzinfo=UTC)


def layer_label(scope: str, key: str) -> str:
    """``scope:key`` label used in warnings and human output.

    Examples:
        >>> layer_label("path", "src/**")
        'path:src/**'
        >>> layer_label("global", "global")
        'global'
    """
    if scope == key:
        return scope
    return f"{scope}:{key}"
