"""The state file: what the provisioner believes exists in VPC Lattice."""

import contextlib
import hashlib
import json
import logging
import os
import tempfile
import uuid
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _sha256_of(obj: Any) -> str:
    # Key order and whitespace must not affect the digest.
    payload = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_attributes_hash(attrs: Mapping[str, Any]) -> str:
    """Hex SHA-256 of *attrs*, independent of key order."""
    return _sha256_of(dict(attrs))


def _write_atomic(path: Path, content: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        tmp.replace(path)
    finally:
        with contextlib.suppress(FileNotFoundError):
            tmp.unlink()


class ResourceInstance(BaseModel):
    """One listener rule as last seen by the provisioner.

    ``attributes`` holds both configured and computed values (``id``, ``arn``,
    ``tags_all``); ``attributes_hash`` is what stale-plan detection compares.
    """

    address: str
    resource_type: str
    name: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    attributes_hash: str = ""
    dependencies: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class State(BaseModel):
    """Terraform-style state for a single workspace.

    ``lineage`` identifies the file across its lifetime and ``serial`` counts
    writes; together with :func:`compute_state_digest` they let a saved plan
    detect that someone else touched the state in between.
    """

    version: int = 1
    workspace: str
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resources: dict[str, ResourceInstance] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)

    def save(self, path: Path) -> None:
        """Write the state atomically, keeping the previous file as ``<path>.backup``."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with contextlib.suppress(FileNotFoundError):
            Path(f"{path}.backup").write_bytes(path.read_bytes())

        content = json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True)
        _write_atomic(path, content + "\n")
        logger.debug("Wrote state serial %d to %s", self.serial, path)

    @classmethod
    def load(cls, path: Path) -> "State":
        state = cls.model_validate_json(path.read_text(encoding="utf-8"))
        logger.debug("Read state serial %d from %s", state.serial, path)
        return state

    @classmethod
    def load_or_create(cls, path: Path, workspace: str) -> "State":
        """Read *path*, or start an empty state for *workspace* if it is missing."""
        if not path.exists():
            logger.debug("No state at %s; starting empty state for %s", path, workspace)
            return cls(workspace=workspace)
        return cls.load(path)


def compute_state_digest(state: State) -> str:
    """Digest of the state's identity and resource hashes.

    Timestamps are left out so that re-reading an unchanged rule does not
    invalidate a saved plan.
    """
    header = state.model_dump(include={"version", "workspace", "lineage", "serial"})
    header["resources"] = [
        {
            "address": address,
            "resource_type": inst.resource_type,
            "name": inst.name,
            "attributes_hash": inst.attributes_hash,
            "dependencies": sorted(inst.dependencies),
        }
        for address, inst in sorted(state.resources.items())
    ]
    return _sha256_of(header)
