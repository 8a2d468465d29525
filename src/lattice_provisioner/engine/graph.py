"""Ordering of resources by their ``depends_on`` edges."""

from __future__ import annotations

import heapq
from collections import defaultdict
from typing import TYPE_CHECKING

from lattice_provisioner.engine.errors import DependencyCycleError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class DependencyGraph:
    """Nodes plus the nodes each one waits for.

    Edges to unknown nodes and self-edges are dropped, so a dependency list may
    mention resources that take no part in the current run.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        dependencies: Mapping[str, Iterable[str]],
        priorities: Mapping[str, int] | None = None,
    ) -> None:
        self._nodes = frozenset(nodes)
        self._priorities = dict(priorities or {})
        self._waits_on = {
            node: frozenset(dependencies.get(node, ())) & self._nodes - {node}
            for node in self._nodes
        }

    def _key(self, node: str) -> tuple[int, str]:
        return self._priorities.get(node, 0), node

    def topological_order(self) -> list[str]:
        """Dependencies first; ties go to the lower priority, then the smaller name.

        Raises:
            DependencyCycleError: Some nodes wait on each other.
        """
        unblocks: defaultdict[str, list[str]] = defaultdict(list)
        for node, deps in self._waits_on.items():
            for dep in deps:
                unblocks[dep].append(node)
        pending = {node: len(deps) for node, deps in self._waits_on.items()}

        ready = [self._key(n) for n, count in pending.items() if count == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            _, node = heapq.heappop(ready)
            order.append(node)
            for child in unblocks[node]:
                pending[child] -= 1
                if pending[child] == 0:
                    heapq.heappush(ready, self._key(child))

        if len(order) < len(self._nodes):
            raise DependencyCycleError(sorted(self._nodes.difference(order)))
        return order

    def reverse_topological_order(self) -> list[str]:
        """Dependents before the things they depend on, as deletes need."""
        return list(reversed(self.topological_order()))
