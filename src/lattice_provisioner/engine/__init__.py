"""Plan and apply engine for VPC Lattice resources."""

from lattice_provisioner.engine.engine import LatticeEngine
from lattice_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    DependencyCycleError,
    DuplicateAddressError,
    EngineError,
    PartialCreateError,
    ResourceImportError,
    StalePlanError,
    StateLockError,
    StateWorkspaceMismatchError,
    UnknownResourceTypeError,
    ValidationError,
)
from lattice_provisioner.engine.handlers import EngineContext, PlanContext, ResourceHandler
from lattice_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
from lattice_provisioner.engine.types import Action, ApplyResult, Plan, PlanMetadata, ResourceChange

__all__ = [
    "Action",
    "ApplyCanceled",
    "ApplyError",
    "ApplyResult",
    "DependencyCycleError",
    "DuplicateAddressError",
    "EngineContext",
    "EngineError",
    "LatticeEngine",
    "PartialCreateError",
    "Plan",
    "PlanContext",
    "PlanMetadata",
    "ResourceChange",
    "ResourceHandler",
    "ResourceImportError",
    "ResourceTypeRegistration",
    "ResourceTypeRegistry",
    "StalePlanError",
    "StateLockError",
    "StateWorkspaceMismatchError",
    "UnknownResourceTypeError",
    "ValidationError",
]
