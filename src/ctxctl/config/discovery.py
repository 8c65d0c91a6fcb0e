"""Locate ctxctl.toml.

Lookup order: an explicit ``--config`` path, then ``CTXCTL_CONFIG``, then a
walk up from the start directory the way git finds ``.git/``.
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "ctxctl.toml"
CONFIG_ENV_VAR = "CTXCTL_CONFIG"


def find_config(start: Path | None = None, *, explicit: str | Path | None = None) -> Path | None:
    """The config file to use, or None.

    A named file (*explicit* or the env var) that does not exist yields
    None; it never falls back to the walk-up.
    """
    named = explicit or os.environ.get(CONFIG_ENV_VAR)
    if named:
        path = Path(named)
        return path if path.is_file() else None

    base = (start or Path.cwd()).resolve()
    for directory in (base, *base.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
