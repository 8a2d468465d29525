"""Nodes of the apply graph.

Every actionable change in a plan becomes one operation. The engine orders
operations by their ``deps`` and runs them one at a time against a shared
``State``; each resource operation records its outcome in that state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from lattice_provisioner.core.state import ResourceInstance, State, compute_attributes_hash
from lattice_provisioner.engine.errors import PartialCreateError

if TYPE_CHECKING:
    from lattice_provisioner.engine.handlers import EngineContext
    from lattice_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
    from lattice_provisioner.engine.types import ResourceChange


class Operation(Protocol):
    key: str
    deps: list[str]
    change: ResourceChange | None

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        """Execute the operation; return True when *state* changed and must be saved."""


@dataclass
class BarrierOperation:
    """Orders two groups of operations without doing anything itself."""

    key: str
    deps: list[str] = field(default_factory=list)
    change: ResourceChange | None = None

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        return False


@dataclass
class _ResourceOperation:
    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        self._execute(ctx, state, registry.get(self.change.resource_type))
        return True

    def _execute(self, ctx: EngineContext, state: State, reg: ResourceTypeRegistration) -> None:
        raise NotImplementedError

    def _desired(self, reg: ResourceTypeRegistration) -> Any:
        """Rebuild the declared resource from the plan and check it still owns this address."""
        change = self.change
        assert change is not None
        verb = change.action.value
        if change.desired is None:
            raise ValueError(f"Missing desired config for {verb}: {change.address}")
        desired = reg.model.model_validate(change.desired)
        if desired.address != change.address:
            raise ValueError(
                f"Desired address mismatch for {verb}: {change.address} != {desired.address}"
            )
        return desired

    def _forget(self, ctx: EngineContext, state: State, reg: ResourceTypeRegistration) -> None:
        assert self.change is not None
        reg.handler.delete(ctx, state.resources[self.change.address])
        del state.resources[self.change.address]

    def _remember(self, state: State, desired: Any, attrs: dict[str, Any]) -> None:
        assert self.change is not None
        now = datetime.now(UTC)
        state.resources[self.change.address] = ResourceInstance(
            address=self.change.address,
            resource_type=self.change.resource_type,
            name=desired.name,
            attributes=attrs,
            attributes_hash=compute_attributes_hash(attrs),
            dependencies=list(desired.depends_on),
            created_at=now,
            updated_at=now,
        )

    def _create(
        self, ctx: EngineContext, state: State, reg: ResourceTypeRegistration, desired: Any
    ) -> None:
        """Create *desired* and track it, even when only its identity is known."""
        try:
            attrs = reg.handler.create(ctx, desired)
        except PartialCreateError as exc:
            self._remember(state, desired, exc.attributes)
            raise
        self._remember(state, desired, attrs)


@dataclass
class CreateOperation(_ResourceOperation):
    def _execute(self, ctx: EngineContext, state: State, reg: ResourceTypeRegistration) -> None:
        self._create(ctx, state, reg, self._desired(reg))


@dataclass
class UpdateOperation(_ResourceOperation):
    def _execute(self, ctx: EngineContext, state: State, reg: ResourceTypeRegistration) -> None:
        assert self.change is not None
        desired = self._desired(reg)
        inst = state.resources[self.change.address]
        attrs = reg.handler.update(ctx, desired, inst)

        inst.attributes = attrs
        inst.attributes_hash = compute_attributes_hash(attrs)
        inst.dependencies = list(desired.depends_on)
        inst.updated_at = datetime.now(UTC)


@dataclass
class ReplaceOperation(_ResourceOperation):
    """Delete the live rule, then create it again from the declared config.

    The old instance leaves state as soon as the delete succeeds, so a failed
    create shows up as a plain create on the next plan, unless the new rule
    was already made.
    """

    def _execute(self, ctx: EngineContext, state: State, reg: ResourceTypeRegistration) -> None:
        desired = self._desired(reg)
        self._forget(ctx, state, reg)
        self._create(ctx, state, reg, desired)


@dataclass
class DeleteOperation(_ResourceOperation):
    def _execute(self, ctx: EngineContext, state: State, reg: ResourceTypeRegistration) -> None:
        self._forget(ctx, state, reg)
