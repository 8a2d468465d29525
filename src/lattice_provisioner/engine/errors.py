"""Engine error types.

Everything the engine raises on purpose derives from :class:`EngineError`.
Failures coming out of handlers (botocore errors, waiter timeouts) surface
during apply wrapped in :class:`ApplyError`.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base exception for engine errors."""


class UnknownResourceTypeError(EngineError):
    """No handler is registered for a resource type found in config or state."""

    def __init__(self, resource_type: str) -> None:
        super().__init__(f"Unknown resource type: {resource_type}")
        self.resource_type = resource_type


class DuplicateAddressError(EngineError):
    """Two declared resources resolve to the same ``type.name`` address."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Duplicate resource address: {address}")
        self.address = address


class DependencyCycleError(EngineError):
    """``depends_on`` edges form a loop."""

    def __init__(self, addresses: list[str]) -> None:
        detail = f": {', '.join(addresses)}" if addresses else ""
        super().__init__(f"Dependency cycle detected{detail}")
        self.addresses = addresses


class StateWorkspaceMismatchError(EngineError):
    """The state file was written for another workspace."""

    def __init__(self, expected: str, got: str) -> None:
        super().__init__(f"State workspace mismatch: expected {expected}, got {got}")
        self.expected = expected
        self.got = got


class StalePlanError(EngineError):
    """State moved on (lineage, serial or content) since the plan was made."""


class StateLockError(EngineError):
    """The ``<state>.lock`` file could not be locked or released."""


class ValidationError(EngineError):
    """Declared resources failed validation; ``errors`` lists every problem."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("Validation failed:\n" + "\n".join(f"  - {e}" for e in errors))


class ResourceImportError(EngineError):
    """An existing remote object cannot be brought under management."""


class PartialCreateError(EngineError):
    """The remote object was created, but reading it back failed.

    ``attributes`` hold what is already known about the new object (at least
    its ``id``) so it can be tracked in state and refreshed on the next plan
    instead of being created a second time.
    """

    def __init__(self, message: str, *, attributes: dict[str, Any]) -> None:
        super().__init__(message)
        self.attributes = attributes


class ApplyError(EngineError):
    """An operation failed mid-apply.

    ``result`` holds the changes applied (and persisted) before the failure;
    the underlying exception is chained via ``__cause__``.
    """

    def __init__(self, *, applied: list[Any], address: str, message: str) -> None:
        from lattice_provisioner.engine.types import ApplyResult

        super().__init__(f"Apply failed on {address}: {message}")
        self.result = ApplyResult(applied=applied)
        self.address = address


class ApplyCanceled(EngineError):
    """Apply interrupted by the user (Ctrl-C)."""
