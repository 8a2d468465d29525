"""Which model and handler serve each resource type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from lattice_provisioner.engine.errors import UnknownResourceTypeError

if TYPE_CHECKING:
    from lattice_provisioner.engine.handlers import ResourceHandler
    from lattice_provisioner.resources.base import Resource


@dataclass(frozen=True)
class ResourceTypeRegistration:
    resource_type: str
    model: type[Resource]
    handler: ResourceHandler[Any]


class ResourceTypeRegistry:
    """Look up the model class and handler for a ``resource_type`` string.

    The engine resolves every change through the registry, so a type that
    was never registered fails at plan time instead of halfway through apply.
    """

    def __init__(self) -> None:
        self._by_type: dict[str, ResourceTypeRegistration] = {}

    def register(self, model: type[Resource], handler: ResourceHandler[Any]) -> None:
        resource_type = getattr(model, "resource_type", "")
        if not resource_type or not isinstance(resource_type, str):
            raise ValueError(f"{model.__name__} has no `resource_type` class variable")
        if resource_type in self._by_type:
            raise ValueError(f"Resource type already registered: {resource_type}")
        self._by_type[resource_type] = ResourceTypeRegistration(resource_type, model, handler)

    def get(self, resource_type: str) -> ResourceTypeRegistration:
        registration = self._by_type.get(resource_type)
        if registration is None:
            raise UnknownResourceTypeError(resource_type)
        return registration

    def resource_types(self) -> list[str]:
        return sorted(self._by_type)
