"""Engine types (plan, changes, metadata)."""

from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from collections.abc import Iterable


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "no-op"


def _count_actions(changes: Iterable[ResourceChange]) -> dict[str, int]:
    """Per-action counts, with every action present (zero when unused)."""
    seen = Counter(c.action.value for c in changes)
    return {a.value: seen[a.value] for a in Action}


class PlanMetadata(BaseModel):
    """What a plan was computed against; checked again at apply time."""

    workspace: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    destroy: bool
    refresh: bool
    state_lineage: str
    state_serial: int
    state_digest: str
    config_digest: str
    engine_version: str


class ResourceChange(BaseModel):
    address: str
    resource_type: str
    action: Action
    desired: dict[str, Any] | None = None
    prior: dict[str, Any] | None = None
    planned: dict[str, Any] | None = None
    # attribute -> {"from": prior, "to": planned}
    diff: dict[str, Any] | None = None
    # Attributes whose change forced a replacement.
    replace_paths: list[str] | None = None


class Plan(BaseModel):
    metadata: PlanMetadata
    changes: list[ResourceChange]

    def summary(self) -> dict[str, int]:
        return _count_actions(self.changes)

    def save(self, path: Path) -> None:
        """Write the plan as JSON so ``apply PLAN`` can run it later."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> Plan:
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))


class ApplyResult(BaseModel):
    applied: list[ResourceChange] = Field(default_factory=list)

    def summary(self) -> dict[str, int]:
        return _count_actions(self.applied)
