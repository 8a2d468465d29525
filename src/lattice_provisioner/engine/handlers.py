"""The interface between the engine and per-type API code."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from lattice_provisioner.resources.base import Resource

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from lattice_provisioner.core import LatticeProvider
    from lattice_provisioner.core.state import ResourceInstance, State

R = TypeVar("R", bound=Resource)


@dataclass(frozen=True)
class EngineContext:
    """What every handler call gets: the AWS connection and the active workspace."""

    provider: LatticeProvider
    workspace: str


class PlanContext:
    """Merged view of desired and existing resources for plan-level validation.

    Desired resources take precedence over state entries at the same address;
    state entries that are not desired are about to be deleted and are left out.
    """

    def __init__(self, all_desired: Mapping[str, Resource], state: State) -> None:
        self._desired = dict(all_desired)
        self._state = state
        self._all_addresses: set[str] = set(all_desired.keys()) | set(state.resources.keys())

    def address_exists(self, address: str) -> bool:
        """Check if an address exists in desired or state."""
        return address in self._all_addresses

    def desired_of_type(self, resource_type: str) -> Iterator[Resource]:
        """Desired resources of *resource_type*, in address order."""
        for address in sorted(self._desired):
            r = self._desired[address]
            if r.resource_type == resource_type:
                yield r

    def prior(self, address: str) -> ResourceInstance | None:
        """State entry for *address*, if it is already provisioned."""
        return self._state.resources.get(address)


class ResourceHandler(Generic[R]):
    """Talks to the remote API on behalf of one resource type.

    The engine owns ordering, state and diffing; a handler only turns a
    declared resource into API calls and returns the attributes to store.
    ``read``/``create``/``update``/``delete`` are required. The validation,
    plan-time and import hooks default to doing nothing.
    """

    def validate(self, ctx: EngineContext, desired: R) -> list[str]:
        """Problems with *desired* on its own; an empty list means valid."""
        _ = ctx, desired
        return []

    def validate_plan(
        self,
        ctx: EngineContext,
        desired: R,
        plan_ctx: PlanContext,
    ) -> list[str]:
        """Problems that only show up next to the other planned resources."""
        _ = ctx, desired, plan_ctx
        return []

    def planned_attrs(self, ctx: EngineContext, desired: R) -> dict[str, Any]:
        """Computed values already known at plan time (e.g. merged tags)."""
        _ = ctx, desired
        return {}

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        """Current attributes of *prior*, or None when it is gone."""
        raise NotImplementedError

    def create(self, ctx: EngineContext, desired: R) -> dict[str, Any]:
        raise NotImplementedError

    def update(self, ctx: EngineContext, desired: R, prior: ResourceInstance) -> dict[str, Any]:
        raise NotImplementedError

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        raise NotImplementedError

    def import_resource(self, ctx: EngineContext, import_id: str) -> dict[str, Any]:
        """Attributes of an existing remote object identified by *import_id*."""
        _ = ctx, import_id
        raise NotImplementedError
