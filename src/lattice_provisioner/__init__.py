"""Terraform-style provisioning for VPC Lattice listener rules."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("lattice-provisioner")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = ["__version__"]
