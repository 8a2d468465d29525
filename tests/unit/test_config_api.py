"""Tests for config convenience API and engine wiring."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

from lattice_provisioner.config import (
    _build_drift_changes,
    _engine_from_config,
    import_resource,
    load,
    plan,
)
from lattice_provisioner.config.loader import _resolve_provider
from lattice_provisioner.config.schema import Config, ProviderConfig
from lattice_provisioner.core.state import ResourceInstance, State
from lattice_provisioner.engine.types import Action

if TYPE_CHECKING:
    import pytest

_YAML = """\
provider:
  region: us-west-2
  workspace: prod

listener_rules:
  - name: api-rule
    service_identifier: svc-1
    listener_identifier: lst-1
    match:
      http_match:
        path_match:
          match:
            prefix: /api
    action:
      fixed_response:
        status_code: 404
"""


class TestEngineFromConfig:
    def test_builds_engine_with_workspace(self) -> None:
        config = Config(provider=ProviderConfig(workspace="prod"))
        engine = _engine_from_config(config)
        assert engine.workspace == "prod"

    def test_builds_engine_with_state_path(self) -> None:
        config = Config(provider=ProviderConfig(), state_path=Path("custom.json"))
        engine = _engine_from_config(config)
        assert engine.state_path == Path("custom.json")

    def test_provider_settings_passed_through(self) -> None:
        config = Config(
            provider=ProviderConfig(
                region="eu-west-1",
                profile="net",
                endpoint_url="http://localhost:4566",
                max_attempts=5,
                default_tags={"team": "net"},
            )
        )
        provider = _engine_from_config(config)._provider
        assert provider.region == "eu-west-1"
        assert provider.profile == "net"
        assert provider.endpoint_url == "http://localhost:4566"
        assert provider.max_attempts == 5
        assert provider.default_tags == {"team": "net"}


class TestResolveProvider:
    """Unit tests for _resolve_provider priority chain (no YAML parsing)."""

    def test_yaml_value_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        result = _resolve_provider({"region": "us-west-2"}, Path())
        assert result["region"] == "us-west-2"

    def test_env_var_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        monkeypatch.setenv("LATTICE_WORKSPACE", "staging")
        result = _resolve_provider({}, Path())
        assert result["region"] == "eu-west-1"
        assert result["workspace"] == "staging"

    def test_yaml_null_falls_through_to_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AWS_PROFILE", "net")
        result = _resolve_provider({"profile": None}, Path())
        assert result["profile"] == "net"

    def test_missing_field_omitted(self) -> None:
        assert "endpoint_url" not in _resolve_provider({}, Path())

    def test_yaml_only_fields_pass_through(self) -> None:
        result = _resolve_provider({"default_tags": {"a": "b"}}, Path())
        assert result["default_tags"] == {"a": "b"}

    def test_dotenv_file(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("LATTICE_ENDPOINT_URL=http://localhost:4566\n")
        result = _resolve_provider({}, tmp_path)
        assert result["endpoint_url"] == "http://localhost:4566"

    def test_env_var_overrides_dotenv(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / ".env").write_text("AWS_REGION=from-dotenv\n")
        monkeypatch.setenv("AWS_REGION", "from-env")
        result = _resolve_provider({}, tmp_path)
        assert result["region"] == "from-env"

    def test_dotenv_with_bom(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_bytes("\ufeffAWS_REGION=us-east-1\n".encode())
        result = _resolve_provider({}, tmp_path)
        assert result["region"] == "us-east-1"


class TestLoad:
    def test_load_returns_config(self, make_config) -> None:
        config = make_config(_YAML)
        assert config.provider.workspace == "prod"
        assert config.listener_rules[0].name == "api-rule"

    def test_dotenv_next_to_config(self, make_config) -> None:
        config = make_config("provider: {}\n", dotenv="LATTICE_MAX_ATTEMPTS=9\n")
        assert config.provider.max_attempts == 9

    def test_dotenv_from_config_dir_not_cwd(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        cfg_dir = tmp_path / "cfg"
        cfg_dir.mkdir()
        (cfg_dir / "config.yaml").write_text("provider: {}\n")
        (cfg_dir / ".env").write_text("LATTICE_WORKSPACE=from-cfg-dir\n")
        monkeypatch.chdir(tmp_path)
        config = load(cfg_dir / "config.yaml")
        assert config.provider.workspace == "from-cfg-dir"


class TestPlan:
    def test_plan_passes_destroy_and_refresh(self, make_config) -> None:
        config = make_config(_YAML)
        with patch("lattice_provisioner.config.LatticeEngine") as engine_cls:
            plan(config, destroy=True, refresh=False)
        engine_cls.return_value.plan.assert_called_once_with(
            config.resources, destroy=True, refresh=False
        )

    def test_plan_without_state_does_not_call_api(self, make_config, tmp_path: Path) -> None:
        config = make_config(_YAML)
        config.state_path = tmp_path / "state.json"

        result = plan(config)

        assert [c.action for c in result.changes] == [Action.CREATE]
        assert result.changes[0].planned is not None
        assert result.changes[0].planned["tags_all"] == {}


def test_import_resource_defaults_to_listener_rules(make_config) -> None:
    config = make_config(_YAML)
    with patch("lattice_provisioner.config.LatticeEngine") as engine_cls:
        engine = engine_cls.return_value
        engine.import_resource.return_value = MagicMock(address="lattice_listener_rule.x")
        import_resource(config, "svc/lst/rule")
    engine.import_resource.assert_called_once_with("lattice_listener_rule", "svc/lst/rule")


class TestBuildDriftChanges:
    @staticmethod
    def _inst(attrs: dict) -> ResourceInstance:
        return ResourceInstance(
            address="lattice_listener_rule.a",
            resource_type="lattice_listener_rule",
            name="a",
            attributes=attrs,
        )

    def test_changed_attributes(self) -> None:
        old = State(workspace="w", resources={"lattice_listener_rule.a": self._inst({"p": 1})})
        new = State(workspace="w", resources={"lattice_listener_rule.a": self._inst({"p": 2})})

        changes = _build_drift_changes(old, new)

        assert len(changes) == 1
        assert changes[0].action == Action.UPDATE
        assert changes[0].diff == {"p": {"from": 1, "to": 2}}

    def test_deleted_out_of_band(self) -> None:
        old = State(workspace="w", resources={"lattice_listener_rule.a": self._inst({"p": 1})})
        new = State(workspace="w")

        changes = _build_drift_changes(old, new)

        assert [(c.address, c.action) for c in changes] == [
            ("lattice_listener_rule.a", Action.DELETE)
        ]

    def test_no_drift(self) -> None:
        old = State(workspace="w", resources={"lattice_listener_rule.a": self._inst({"p": 1})})
        assert _build_drift_changes(old, old) == []
