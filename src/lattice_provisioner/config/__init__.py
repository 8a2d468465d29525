"""Load ``lattice-provisioner.yaml`` and drive the engine with it.

These helpers are what the CLI calls; they are equally usable from a script::

    from lattice_provisioner import config

    cfg = config.load("lattice-provisioner.yaml")
    result = config.plan_and_apply(cfg)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from lattice_provisioner.config.loader import ConfigError, load_config
from lattice_provisioner.config.registry import default_registry
from lattice_provisioner.config.schema import Config, ProviderConfig
from lattice_provisioner.core.provider import LatticeProvider
from lattice_provisioner.core.state import State
from lattice_provisioner.engine.engine import LatticeEngine, ProgressCallback
from lattice_provisioner.engine.lock import StateLock
from lattice_provisioner.engine.types import Action, ResourceChange
from lattice_provisioner.resources.listener_rule import ListenerRuleResource

if TYPE_CHECKING:
    from pathlib import Path

    from lattice_provisioner.core.state import ResourceInstance
    from lattice_provisioner.engine.types import ApplyResult, Plan

__all__ = [
    "Config",
    "ConfigError",
    "ProviderConfig",
    "State",
    "apply",
    "drift",
    "import_resource",
    "load",
    "load_config",
    "plan",
    "plan_and_apply",
    "refresh",
    "save_state",
]

# ProviderConfig fields that configure the AWS client.
_CLIENT_FIELDS = {"region", "profile", "endpoint_url", "max_attempts", "default_tags"}


def load(path: Path | str) -> Config:
    return load_config(path)


def _engine_from_config(config: Config) -> LatticeEngine:
    provider = LatticeProvider(**config.provider.model_dump(include=_CLIENT_FIELDS))
    return LatticeEngine(
        provider=provider,
        workspace=config.provider.workspace,
        state_path=config.state_path,
        registry=default_registry(),
    )


def plan(config: Config, *, destroy: bool = False, refresh: bool = True) -> Plan:
    """Compute the changes needed to make VPC Lattice match *config*."""
    return _engine_from_config(config).plan(config.resources, destroy=destroy, refresh=refresh)


def apply(
    plan_obj: Plan, config: Config, *, progress: ProgressCallback | None = None
) -> ApplyResult:
    """Execute *plan_obj*; fails if the state moved since it was computed."""
    return _engine_from_config(config).apply(plan_obj, progress=progress)


def plan_and_apply(config: Config, *, destroy: bool = False, refresh: bool = True) -> ApplyResult:
    return apply(plan(config, destroy=destroy, refresh=refresh), config)


def refresh(config: Config) -> tuple[list[ResourceChange], State]:
    """Re-read every tracked rule and report how the live rules differ.

    The refreshed state is returned, not written; pass it to
    :func:`save_state` to keep it.
    """
    engine = _engine_from_config(config)
    before = State.load_or_create(config.state_path, config.provider.workspace)
    after = engine.refresh()
    return _build_drift_changes(before, after), after


def save_state(config: Config, state: State) -> None:
    with StateLock(config.state_path):
        state.serial += 1
        state.save(config.state_path)


def drift(config: Config) -> list[ResourceChange]:
    """Like :func:`refresh` but only the changes; nothing is saved."""
    return refresh(config)[0]


def import_resource(
    config: Config,
    import_id: str,
    *,
    resource_type: str = ListenerRuleResource.resource_type,
) -> ResourceInstance:
    """Adopt an existing rule (``SERVICE/LISTENER/RULE_ID``) into the state file."""
    return _engine_from_config(config).import_resource(resource_type, import_id)


def _attribute_diff(old: dict[str, Any], new: dict[str, Any]) -> dict[str, dict[str, Any]]:
    return {
        key: {"from": old.get(key), "to": new.get(key)}
        for key in sorted(old.keys() | new.keys())
        if old.get(key) != new.get(key)
    }


def _build_drift_changes(old_state: State, new_state: State) -> list[ResourceChange]:
    """Rules edited out of band become UPDATEs; rules gone from AWS become DELETEs."""
    changes: list[ResourceChange] = []
    for address, old in sorted(old_state.resources.items()):
        new = new_state.resources.get(address)
        if new is None:
            changes.append(
                ResourceChange(
                    address=address,
                    resource_type=old.resource_type,
                    action=Action.DELETE,
                    prior=dict(old.attributes),
                )
            )
        elif diff := _attribute_diff(old.attributes, new.attributes):
            changes.append(
                ResourceChange(
                    address=address,
                    resource_type=new.resource_type,
                    action=Action.UPDATE,
                    prior=dict(old.attributes),
                    planned=dict(new.attributes),
                    diff=diff,
                )
            )
    return changes
