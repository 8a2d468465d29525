"""Core infrastructure components for Lattice Provisioner."""

from lattice_provisioner.core.provider import LatticeProvider
from lattice_provisioner.core.state import ResourceInstance, State

__all__ = ["LatticeProvider", "ResourceInstance", "State"]
