"""Default resource type registry factory."""

from __future__ import annotations

from lattice_provisioner.engine.listener_rule_handler import ListenerRuleHandler
from lattice_provisioner.engine.registry import ResourceTypeRegistry
from lattice_provisioner.resources.listener_rule import ListenerRuleResource


def default_registry() -> ResourceTypeRegistry:
    """Create a fresh registry with all built-in resource types and handlers."""
    registry = ResourceTypeRegistry()
    registry.register(ListenerRuleResource, ListenerRuleHandler())
    return registry
