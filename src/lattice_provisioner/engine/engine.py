"""Plan/apply engine."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from lattice_provisioner import __version__
from lattice_provisioner.core.state import (
    ResourceInstance,
    State,
    compute_attributes_hash,
    compute_state_digest,
)
from lattice_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    DuplicateAddressError,
    ResourceImportError,
    StalePlanError,
    StateWorkspaceMismatchError,
    ValidationError,
)
from lattice_provisioner.engine.graph import DependencyGraph
from lattice_provisioner.engine.handlers import EngineContext, PlanContext
from lattice_provisioner.engine.lock import StateLock
from lattice_provisioner.engine.operations import (
    BarrierOperation,
    CreateOperation,
    DeleteOperation,
    ReplaceOperation,
    UpdateOperation,
)
from lattice_provisioner.engine.types import Action, ApplyResult, Plan, PlanMetadata, ResourceChange
from lattice_provisioner.resources.markers import (
    CompareStrategy,
    collect_compare_strategies,
    collect_computed_paths,
    collect_force_new_fields,
    drop_unset_computed,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ResourceChange, Literal["start", "done"]], None]

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from lattice_provisioner.core import LatticeProvider
    from lattice_provisioner.engine.operations import Operation
    from lattice_provisioner.engine.registry import ResourceTypeRegistry
    from lattice_provisioner.resources.base import Resource

_OPERATION_TYPES: dict[Action, type[Any]] = {
    Action.CREATE: CreateOperation,
    Action.UPDATE: UpdateOperation,
    Action.REPLACE: ReplaceOperation,
    Action.DELETE: DeleteOperation,
}

_BARRIER_KEY = "__engine__.apply_barrier"


def _values_differ(
    desired: Any,
    prior: Any,
    *,
    strategy: CompareStrategy | None = None,
    computed: Sequence[str] = (),
) -> bool:
    """Tell whether a desired attribute value differs from the stored one.

    ``ignore`` never differs, ``exact`` is plain equality and ``set``
    compares two lists without regard to order. The default (``partial``)
    only looks at what the desired side declares: dict keys missing from
    *desired* are skipped, and equal-length lists are walked pairwise with
    the same rule. Remote defaults and computed members therefore never
    show up as changes.

    *computed* names dotted paths the remote side fills in; they are left
    out of the comparison wherever *desired* does not set them.
    """
    if computed:
        prior = drop_unset_computed(desired, prior, computed)
    match strategy:
        case "ignore":
            return False
        case "exact":
            return desired != prior
        case "set" if isinstance(desired, list) and isinstance(prior, list):
            return set(desired) != set(prior)
        case "set":
            return desired != prior

    if isinstance(desired, dict) and isinstance(prior, dict):
        return any(_values_differ(v, prior.get(k)) for k, v in desired.items())
    if isinstance(desired, list) and isinstance(prior, list):
        return len(desired) != len(prior) or any(
            _values_differ(d, p) for d, p in zip(desired, prior, strict=True)
        )
    return desired != prior


def _compute_config_digest(resources: Iterable[Resource]) -> str:
    """Digest of the desired configuration; timestamps and ordering do not matter."""
    return compute_attributes_hash(
        {
            r.address: {
                "resource_type": r.resource_type,
                "planned": r.model_dump(exclude_none=True, exclude={"address", "depends_on"}),
            }
            for r in resources
        }
    )


class LatticeEngine:
    """Terraform-like plan/apply engine for VPC Lattice resources.

    One engine works on one state file, scoped to one workspace. Resources
    are handed to :meth:`plan`; the resulting :class:`Plan` is executed by
    :meth:`apply`, which refuses plans computed against an older state.
    """

    def __init__(
        self,
        *,
        provider: LatticeProvider,
        workspace: str,
        state_path: Path,
        registry: ResourceTypeRegistry,
    ) -> None:
        self._provider = provider
        self._workspace = workspace
        self._state_path = state_path
        self._registry = registry

    @property
    def workspace(self) -> str:
        return self._workspace

    @property
    def state_path(self) -> Path:
        return self._state_path

    def _ctx(self) -> EngineContext:
        return EngineContext(provider=self._provider, workspace=self._workspace)

    def _handler(self, resource_type: str) -> Any:
        return self._registry.get(resource_type).handler

    def _check_workspace(self, state: State) -> None:
        if state.workspace != self._workspace:
            raise StateWorkspaceMismatchError(self._workspace, state.workspace)

    def _load_state(self) -> State:
        state = State.load_or_create(self._state_path, workspace=self._workspace)
        self._check_workspace(state)
        logger.debug("State loaded: serial=%d, %d resources", state.serial, len(state.resources))
        return state

    def _save(self, state: State) -> None:
        state.serial += 1
        state.save(self._state_path)

    # ── Refresh ─────────────────────────────────────────────────────

    def _refresh_state_in_place(self, state: State) -> bool:
        """Re-read every tracked resource. Returns True when anything changed."""
        ctx = self._ctx()
        changed = False

        for address, inst in list(state.resources.items()):
            attrs = self._handler(inst.resource_type).read(ctx, inst)
            if attrs is None:
                logger.warning("%s no longer exists remotely, removing from state", address)
                del state.resources[address]
                changed = True
                continue

            attrs_hash = compute_attributes_hash(attrs)
            if attrs == inst.attributes and attrs_hash == inst.attributes_hash:
                continue
            inst.attributes = attrs
            inst.attributes_hash = attrs_hash
            inst.updated_at = datetime.now(UTC)
            changed = True

        logger.debug("Refreshed %d resources, changed=%s", len(state.resources), changed)
        return changed

    def refresh(self, *, persist: bool = False) -> State:
        """Refresh state from the API; write it back only when *persist* is set."""
        with StateLock(self._state_path):
            state = self._load_state()
            if self._refresh_state_in_place(state) and persist:
                self._save(state)
            return state

    # ── Plan ────────────────────────────────────────────────────────

    def _classify_change(
        self,
        addr: str,
        resource: Resource,
        state: State,
        ctx: EngineContext,
    ) -> ResourceChange:
        """Classify a single resource as CREATE, UPDATE, REPLACE, or NOOP."""
        desired = resource.model_dump(exclude_none=True, exclude={"address"})
        planned = {k: v for k, v in desired.items() if k != "depends_on"}
        extra = self._handler(resource.resource_type).planned_attrs(ctx, resource)
        planned.update(extra)

        change = ResourceChange(
            address=addr,
            resource_type=resource.resource_type,
            action=Action.CREATE,
            desired=desired,
            planned=planned,
        )
        prior_inst = state.resources.get(addr)
        if prior_inst is None:
            logger.debug("%s: create", addr)
            return change

        prior = dict(prior_inst.attributes)
        # Handler-derived attributes are fully known up front.
        strategies = dict.fromkeys(extra, "exact") | collect_compare_strategies(resource)
        computed = collect_computed_paths(resource)
        diff = {
            k: {"from": prior.get(k), "to": v}
            for k, v in planned.items()
            if _values_differ(
                v, prior.get(k), strategy=strategies.get(k), computed=computed.get(k, ())
            )
        }
        forcing = sorted(diff.keys() & collect_force_new_fields(resource))

        change.prior = prior
        change.diff = diff or None
        change.replace_paths = forcing or None
        change.action = Action.REPLACE if forcing else Action.UPDATE if diff else Action.NOOP
        logger.debug("%s: %s", addr, change.action.value)
        return change

    def _plan_deletes(self, state: State, addrs: set[str]) -> list[ResourceChange]:
        """Delete changes for *addrs*, dependents first."""
        changes = []
        for addr in self._delete_order(state, addrs):
            inst = state.resources[addr]
            self._registry.get(inst.resource_type)  # unknown types fail at plan time
            changes.append(
                ResourceChange(
                    address=addr,
                    resource_type=inst.resource_type,
                    action=Action.DELETE,
                    prior=dict(inst.attributes),
                )
            )
        return changes

    def _index_desired(self, resources: Sequence[Resource]) -> dict[str, Resource]:
        by_addr: dict[str, Resource] = {}
        for r in resources:
            if r.address in by_addr:
                raise DuplicateAddressError(r.address)
            self._registry.get(r.resource_type)
            by_addr[r.address] = r
        return by_addr

    def _validate(self, desired_by_addr: dict[str, Resource], state: State) -> None:
        """Raise one ValidationError listing every problem found."""
        ctx = self._ctx()
        plan_ctx = PlanContext(desired_by_addr, state)
        errors: list[str] = []
        for r in desired_by_addr.values():
            errors.extend(self._handler(r.resource_type).validate(ctx, r))
        for r in desired_by_addr.values():
            errors.extend(self._handler(r.resource_type).validate_plan(ctx, r, plan_ctx))
        errors.extend(
            f"Resource '{r.address}' depends on unknown address '{dep}'"
            for r in desired_by_addr.values()
            for dep in r.depends_on
            if not plan_ctx.address_exists(dep)
        )
        if errors:
            raise ValidationError(errors)

    def _plan_changes(
        self, desired_by_addr: dict[str, Resource], state: State
    ) -> list[ResourceChange]:
        ctx = self._ctx()
        order = DependencyGraph(
            desired_by_addr.keys(),
            {a: list(r.depends_on) for a, r in desired_by_addr.items()},
            priorities={a: r.plan_priority for a, r in desired_by_addr.items()},
        ).topological_order()
        changes = [self._classify_change(a, desired_by_addr[a], state, ctx) for a in order]
        changes.extend(self._plan_deletes(state, set(state.resources) - set(desired_by_addr)))
        return changes

    def plan(
        self, resources: Sequence[Resource], *, destroy: bool = False, refresh: bool = True
    ) -> Plan:
        """Compute the changes needed to reach *resources* (or to remove everything)."""
        logger.info(
            "Planning %d resources (destroy=%s, refresh=%s)", len(resources), destroy, refresh
        )
        # A refresh may rewrite state, so only then is the lock needed.
        with StateLock(self._state_path) if refresh else contextlib.nullcontext():
            state = self._load_state()
            if refresh and self._refresh_state_in_place(state):
                self._save(state)

            desired_by_addr = self._index_desired(resources)
            if destroy:
                changes = self._plan_deletes(state, set(state.resources))
            else:
                self._validate(desired_by_addr, state)
                changes = self._plan_changes(desired_by_addr, state)

            metadata = PlanMetadata(
                workspace=self._workspace,
                created_at=datetime.now(UTC),
                destroy=destroy,
                refresh=refresh,
                state_lineage=state.lineage,
                state_serial=state.serial,
                state_digest=compute_state_digest(state),
                config_digest=_compute_config_digest([] if destroy else resources),
                engine_version=__version__,
            )
            return Plan(metadata=metadata, changes=changes)

    # ── Apply ───────────────────────────────────────────────────────

    def _delete_order(self, state: State, delete_set: set[str]) -> list[str]:
        insts = {addr: state.resources[addr] for addr in delete_set}
        return DependencyGraph(
            delete_set,
            {a: [d for d in i.dependencies if d in delete_set] for a, i in insts.items()},
            priorities={
                a: self._registry.get(i.resource_type).model.plan_priority
                for a, i in insts.items()
            },
        ).reverse_topological_order()

    def _operation_order(self, plan: Plan, state: State) -> list[Operation]:
        """Deterministic execution order over the operation graph."""
        ops = self._build_apply_operations(plan, state)
        priorities = {
            k: self._registry.get(op.change.resource_type).model.plan_priority
            for k, op in ops.items()
            if op.change is not None
        }
        graph = DependencyGraph(ops.keys(), {k: op.deps for k, op in ops.items()}, priorities)
        return [ops[k] for k in graph.topological_order()]

    def _build_apply_operations(self, plan: Plan, state: State) -> dict[str, Operation]:
        """One operation per actionable change, wired by ``depends_on``.

        Creates, updates and replacements follow dependency order; deletes run
        in reverse dependency order and only after a barrier that waits for
        every other operation.
        """
        ops: dict[str, Operation] = {}
        for c in plan.changes:
            if c.action == Action.NOOP:
                continue
            op_type = _OPERATION_TYPES.get(c.action)
            if op_type is None:
                raise ValueError(f"Unknown action: {c.action}")
            if c.address in ops:
                raise ValueError(f"Duplicate operation key in plan: {c.address}")
            ops[c.address] = op_type(key=c.address, change=c)

        delete_set = {k for k, op in ops.items() if op.change.action == Action.DELETE}
        change_set = ops.keys() - delete_set

        for addr in change_set:
            change = ops[addr].change
            desired = change.desired
            if desired is None:
                raise ValueError(f"Missing desired config for {change.action.value}: {addr}")
            deps = desired.get("depends_on") or []
            if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
                raise ValueError(f"Invalid depends_on for {addr}: expected list[str]")
            ops[addr].deps.extend(d for d in deps if d in change_set)

        for addr in delete_set:
            inst = state.resources.get(addr)
            if inst is None:
                raise ValueError(f"Missing state for delete operation: {addr}")
            for dep in inst.dependencies:
                if dep in delete_set:
                    ops[dep].deps.append(addr)

        if change_set and delete_set:
            if _BARRIER_KEY in ops:
                raise ValueError(f"Barrier operation key conflicts with plan: {_BARRIER_KEY}")
            ops[_BARRIER_KEY] = BarrierOperation(key=_BARRIER_KEY, deps=sorted(change_set))
            for addr in delete_set:
                ops[addr].deps.append(_BARRIER_KEY)

        return ops

    def _check_not_stale(self, plan: Plan, state: State) -> None:
        meta = plan.metadata
        checks = (
            ("lineage", state.lineage, meta.state_lineage),
            ("serial", state.serial, meta.state_serial),
            ("digest", compute_state_digest(state), meta.state_digest),
        )
        for what, current, planned in checks:
            if current != planned:
                raise StalePlanError(f"State {what} changed; re-run plan")

    def apply(self, plan: Plan, *, progress: ProgressCallback | None = None) -> ApplyResult:
        """Execute *plan*, saving state after every successful operation."""
        with StateLock(self._state_path):
            if self._state_path.exists():
                state = self._load_state()
            else:
                # A saved plan may be applied before any state exists.
                state = State(
                    workspace=self._workspace,
                    lineage=plan.metadata.state_lineage,
                    serial=plan.metadata.state_serial,
                )
            self._check_not_stale(plan, state)

            ctx = self._ctx()
            ordered_ops = self._operation_order(plan, state)
            logger.info("Applying %d operations", len(ordered_ops))

            applied: list[ResourceChange] = []
            current = ""
            before = compute_state_digest(state)
            try:
                for op in ordered_ops:
                    current = op.key
                    before = compute_state_digest(state)
                    logger.debug("Applying %s: %s", op.key, type(op).__name__)
                    if progress and op.change is not None:
                        progress(op.change, "start")
                    if op.run(ctx=ctx, state=state, registry=self._registry):
                        assert op.change is not None
                        if progress:
                            progress(op.change, "done")
                        self._save(state)
                        applied.append(op.change)
            except KeyboardInterrupt as e:  # pragma: no cover
                raise ApplyCanceled("Apply canceled") from e
            except Exception as e:
                logger.error("Apply failed on %s: %s", current, e)
                # A half-finished create still leaves a remote object to track.
                if compute_state_digest(state) != before:
                    self._save(state)
                raise ApplyError(applied=applied, address=current, message=str(e)) from e

            return ApplyResult(applied=applied)

    # ── Import ──────────────────────────────────────────────────────

    def import_resource(self, resource_type: str, import_id: str) -> ResourceInstance:
        """Adopt an existing remote object into state without changing it.

        The address is derived from the remote object's name. The next plan
        compares configuration against what was imported.
        """
        handler = self._handler(resource_type)
        with StateLock(self._state_path):
            state = self._load_state()
            attrs = handler.import_resource(self._ctx(), import_id)

            name = attrs.get("name")
            if not isinstance(name, str) or not name:
                raise ResourceImportError(f"Imported object {import_id!r} has no name")
            address = f"{resource_type}.{name}"
            if address in state.resources:
                raise ResourceImportError(f"{address} is already managed in this state")

            now = datetime.now(UTC)
            inst = ResourceInstance(
                address=address,
                resource_type=resource_type,
                name=name,
                attributes=attrs,
                attributes_hash=compute_attributes_hash(attrs),
                created_at=now,
                updated_at=now,
            )
            state.resources[address] = inst
            self._save(state)
            logger.info("Imported %s as %s", import_id, address)
            return inst
