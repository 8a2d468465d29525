"""``Annotated`` markers that tell the planner how to treat a resource field.

- ``Compare``: how desired and prior values are compared when diffing
- ``ForceNew``: a change cannot be applied in place; the planner schedules
  a replacement (delete, then create)
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, TypeAlias, TypeVar

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

M = TypeVar("M")
CompareStrategy: TypeAlias = Literal["partial", "exact", "set", "ignore"]


# ── Markers ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Compare:
    """Diff strategy for one field.

    - ``"partial"``: dicts compare only the keys present in the desired value
    - ``"exact"``: plain equality
    - ``"set"``: lists compare without regard to order
    - ``"ignore"``: never compared, for local-only settings such as timeouts

    ``computed`` lists dotted sub-paths the API fills in when left unset.
    Where the desired value leaves such a path unset, the stored value at
    that path is not compared.
    """

    strategy: CompareStrategy
    computed: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ForceNew:
    """Changing the field means deleting and re-creating the resource."""


# ── Introspection ───────────────────────────────────────────────────


def _markers(resource_or_cls: Any, marker_type: type[M]) -> Iterator[tuple[str, M]]:
    """Yield ``(field_name, marker)`` for fields annotated with *marker_type*."""
    cls = resource_or_cls if isinstance(resource_or_cls, type) else type(resource_or_cls)
    for name, info in cls.model_fields.items():
        for meta in info.metadata:
            if isinstance(meta, marker_type):
                yield name, meta
                break


def collect_compare_strategies(resource_or_cls: Any) -> dict[str, CompareStrategy]:
    return {name: marker.strategy for name, marker in _markers(resource_or_cls, Compare)}


def collect_force_new_fields(resource_or_cls: Any) -> set[str]:
    """Fields whose change turns an update into a replacement."""
    return {name for name, _ in _markers(resource_or_cls, ForceNew)}


def collect_computed_paths(resource_or_cls: Any) -> dict[str, tuple[str, ...]]:
    """``Compare(..., computed=...)`` sub-paths, keyed by field name."""
    return {
        name: marker.computed
        for name, marker in _markers(resource_or_cls, Compare)
        if marker.computed
    }


def drop_unset_computed(desired: Any, prior: Any, paths: Iterable[str]) -> Any:
    """Copy of *prior* without the computed *paths* that *desired* leaves unset."""
    if not isinstance(prior, dict):
        return prior
    pruned = copy.deepcopy(prior)
    for path in paths:
        *parents, leaf = path.split(".")
        want, have = desired, pruned
        for segment in parents:
            want = want.get(segment) if isinstance(want, dict) else None
            have = have.get(segment) if isinstance(have, dict) else None
        if not isinstance(have, dict):
            continue
        if not isinstance(want, dict) or want.get(leaf) is None:
            have.pop(leaf, None)
    return pruned
