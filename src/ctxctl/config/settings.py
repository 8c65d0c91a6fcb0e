"""Unified settings: CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs: CLI flags passed by Click
  2. Env vars: ``CTXCTL_*`` prefix (``__`` for nesting)
  3. TOML file: ``ctxctl.toml`` discovered via walk-up
  4. Code defaults: baked into the section models

Uses Pydantic Settings v2 with a custom :class:`TomlSettingsSource` that
reuses the walk-up discovery from :mod:`ctxctl.config.discovery`.
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from ctxctl.config.discovery import find_config
from ctxctl.config.models import (
    ArchiveConfig,
    BudgetConfig,
    CacheConfig,
    ResolveConfig,
    StoreConfig,
)


class ConfigFileError(ValueError):
    """ctxctl.toml exists but is not valid TOML."""


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from a ``ctxctl.toml`` file discovered via walk-up."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise ConfigFileError(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        """Return the full TOML data dict for Pydantic to merge."""
        return self._data


# Thread-local storage for the TOML path during construction.
_tls = threading.local()


class CtxSettings(BaseSettings):
    """Unified settings for the ctxctl CLI and embedding callers.

    Attributes:
        project_root: Directory holding ``ctxctl.toml`` (or CWD if none
            was found). Relative layer roots resolve against it.
        config_path: The TOML file in use, or None.
        layers_dir: Explicit ``--root`` override of ``[store] root``.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "CTXCTL_",
        "env_nested_delimiter": "__",
    }

    # --- Resolved paths, derived from config location ---
    project_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None
    layers_dir: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    # --- TOML sections ---
    store: StoreConfig = Field(default_factory=StoreConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    resolve: ResolveConfig = Field(default_factory=ResolveConfig)

    @property
    def layer_root(self) -> Path:
        """Directory of layer documents."""
        if self.layers_dir is not None:
            return self.layers_dir
        root = Path(self.store.root)
        return root if root.is_absolute() else self.project_root / root

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert the TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        project_root: Path | None = None,
        **cli_flags: Any,
    ) -> CtxSettings:
        """Construct settings from a CLI invocation.

        Discovers ``ctxctl.toml`` via walk-up (or explicit *config_path*),
        resolves *project_root* from the config file's parent directory,
        and merges CLI flags as highest-priority overrides. ``None``
        flags are dropped so they never mask env or TOML values.
        """
        toml_path = find_config(project_root, explicit=config_path)

        resolved_root = project_root
        if resolved_root is None:
            resolved_root = toml_path.parent if toml_path else Path.cwd()

        flags = {k: v for k, v in cli_flags.items() if v is not None}
        _tls.toml_path = toml_path
        try:
            return cls(
                project_root=resolved_root,
                config_path=toml_path,
                **flags,
            )
        finally:
            _tls.toml_path = None
