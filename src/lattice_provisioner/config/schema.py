"""Configuration models for YAML-based provisioning."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lattice_provisioner.resources.base import Resource  # noqa: TC001 (Pydantic needs this at runtime)
from lattice_provisioner.resources.listener_rule import (
    ListenerRuleResource,  # noqa: TC001 (Pydantic needs this at runtime)
)


class ProviderConfig(BaseSettings):
    """VPC Lattice provider settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``LATTICE_`` prefix.  Constructor kwargs take precedence.

    Credentials are never read from YAML; they come from the standard AWS
    chain, optionally narrowed with ``profile``.
    """

    model_config = SettingsConfigDict(env_prefix="LATTICE_")

    region: str | None = None
    profile: str | None = None
    endpoint_url: str | None = None
    workspace: str = Field(default="default", min_length=1)
    max_attempts: int = Field(default=3, ge=1)
    default_tags: dict[str, str] = Field(default_factory=dict)


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


class Config(BaseModel):
    """Provisioning configuration: validates YAML structure directly."""

    provider: ProviderConfig
    state_path: Path = Path(".lattice-state.json")
    listener_rules: Annotated[list[ListenerRuleResource], BeforeValidator(_none_to_list)] = []
    config_dir: Path = Path()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def resources(self) -> list[Resource]:
        """All declared resources: ordering is not significant."""
        return [*self.listener_rules]
