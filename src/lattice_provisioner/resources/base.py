"""Base resource class for VPC Lattice resources."""

from typing import Annotated, ClassVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

from lattice_provisioner.resources.markers import Compare


class Resource(BaseModel):
    """Base class for all provisioned resources.

    Resources are pure data - they define the desired state.
    Handlers know how to CRUD resources.
    """

    model_config = ConfigDict(extra="forbid")

    resource_type: ClassVar[str]
    namespace: ClassVar[str]
    plan_priority: ClassVar[int] = 100

    name: str = Field(pattern=r"^[a-zA-Z0-9_-]+$")
    tags: Annotated[dict[str, str], Compare("exact")] = Field(default_factory=dict)

    # Lifecycle
    depends_on: list[str] = []

    @computed_field
    @property
    def address(self) -> str:
        """Unique address for this resource (e.g., 'lattice_listener_rule.api')."""
        return f"{self.resource_type}.{self.name}"
