"""Tests for CtxSettings: unified settings with TOML source."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from ctxctl.config.settings import ConfigFileError, CtxSettings
from ctxctl.domain.types import Scope


class TestCtxSettingsDefaults:
    def test_all_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """With no TOML and no env vars, all fields use code defaults."""
        monkeypatch.delenv("CTXCTL_CONFIG", raising=False)
        settings = CtxSettings.from_cli(project_root=tmp_path)
        assert settings.project_root == tmp_path
        assert settings.json_output is False
        assert settings.store.strict is True
        assert settings.archive.retention_days == 180
        assert settings.budget.default_tokens == 8000
        assert settings.budget.fill_order[0] is Scope.FEATURE
        assert settings.cache.max_entries == 256
        assert settings.resolve.default_task_type == "general"
        assert settings.layer_root == tmp_path / "context"

    def test_frozen(self, tmp_path: Path) -> None:
        settings = CtxSettings.from_cli(project_root=tmp_path)
        with pytest.raises(ValidationError):
            settings.quiet = True  # type: ignore[misc]


class TestTomlSource:
    def test_loads_from_toml(self, tmp_path: Path) -> None:
        toml = tmp_path / "ctxctl.toml"
        toml.write_text('[store]\nroot = "agents/context"\n[archive]\nretention_days = 30\n')
        settings = CtxSettings.from_cli(project_root=tmp_path)
        assert settings.layer_root == tmp_path / "agents" / "context"
        assert settings.archive.retention_days == 30
        assert settings.store.strict is True  # default preserved

    def test_fill_order_from_toml(self, tmp_path: Path) -> None:
        toml = tmp_path / "ctxctl.toml"
        toml.write_text(
            '[budget]\nfill_order = ["global", "domain", "project", "path", "feature"]\n'
        )
        settings = CtxSettings.from_cli(project_root=tmp_path)
        assert settings.budget.fill_order[0] is Scope.GLOBAL

    def test_invalid_fill_order_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "ctxctl.toml").write_text('[budget]\nfill_order = ["path"]\n')
        with pytest.raises(ValidationError, match="fill order"):
            CtxSettings.from_cli(project_root=tmp_path)

    def test_invalid_toml(self, tmp_path: Path) -> None:
        (tmp_path / "ctxctl.toml").write_text("[store\n")
        with pytest.raises(ConfigFileError, match="Invalid TOML"):
            CtxSettings.from_cli(project_root=tmp_path)

    def test_explicit_config_path(self, tmp_path: Path) -> None:
        custom = tmp_path / "custom" / "my.toml"
        custom.parent.mkdir(parents=True)
        custom.write_text("[cache]\nmax_entries = 4\n")
        settings = CtxSettings.from_cli(config_path=str(custom), project_root=tmp_path)
        assert settings.cache.max_entries == 4
        assert settings.config_path == custom

    def test_root_from_toml_location(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without an explicit root, relative paths resolve against the TOML's directory."""
        monkeypatch.delenv("CTXCTL_CONFIG", raising=False)
        (tmp_path / "ctxctl.toml").write_text("")
        subdir = tmp_path / "src" / "deep"
        subdir.mkdir(parents=True)
        monkeypatch.chdir(subdir)
        settings = CtxSettings.from_cli()
        assert settings.project_root == tmp_path.resolve()
        assert settings.layer_root == tmp_path.resolve() / "context"


class TestCliFlags:
    def test_cli_flags_override(self, tmp_path: Path) -> None:
        settings = CtxSettings.from_cli(project_root=tmp_path, json_output=True, verbose=True)
        assert settings.json_output is True
        assert settings.verbose is True

    def test_none_flags_do_not_mask_toml(self, tmp_path: Path) -> None:
        (tmp_path / "ctxctl.toml").write_text("quiet = true\n")
        settings = CtxSettings.from_cli(project_root=tmp_path, quiet=None)
        assert settings.quiet is True

    def test_layers_dir_override(self, tmp_path: Path) -> None:
        settings = CtxSettings.from_cli(project_root=tmp_path, layers_dir=tmp_path / "other")
        assert settings.layer_root == tmp_path / "other"


class TestEnvVars:
    def test_nested_env_var_override(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CTXCTL_BUDGET__DEFAULT_TOKENS", "1234")
        settings = CtxSettings.from_cli(project_root=tmp_path)
        assert settings.budget.default_tokens == 1234

    def test_env_beats_toml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "ctxctl.toml").write_text("[archive]\nretention_days = 30\n")
        monkeypatch.setenv("CTXCTL_ARCHIVE__RETENTION_DAYS", "60")
        settings = CtxSettings.from_cli(project_root=tmp_path)
        assert settings.archive.retention_days == 60
