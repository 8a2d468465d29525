"""Listener rule resource model for VPC Lattice."""

from __future__ import annotations

from typing import Annotated, ClassVar, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from lattice_provisioner.resources.base import Resource
from lattice_provisioner.resources.markers import Compare, ForceNew

_NonEmptyStr = Annotated[str, Field(min_length=1)]

DEFAULT_TIMEOUT_SECONDS = 30 * 60

# Filled in by the API when not configured.
MATCH_COMPUTED_PATHS = ("http_match.method",)


class _Block(BaseModel):
    """Nested configuration block. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")


def _exactly_one(block: BaseModel, *fields: str) -> None:
    present = [f for f in fields if getattr(block, f) is not None]
    if len(present) != 1:
        msg = f"Exactly one of {', '.join(repr(f) for f in fields)} must be set"
        raise ValueError(msg)


# ── Action ──────────────────────────────────────────────────────────


class FixedResponseAction(_Block):
    """Respond directly with a status code."""

    status_code: int = Field(ge=100, le=599)


class WeightedTargetGroup(_Block):
    target_group_identifier: _NonEmptyStr
    weight: int = Field(default=1, ge=0, le=999)


class ForwardAction(_Block):
    """Forward to one or two weighted target groups."""

    target_groups: list[WeightedTargetGroup] = Field(min_length=1, max_length=2)


class RuleAction(_Block):
    fixed_response: FixedResponseAction | None = None
    forward: ForwardAction | None = None

    @model_validator(mode="after")
    def _check_one_action(self) -> Self:
        _exactly_one(self, "fixed_response", "forward")
        return self


# ── Match ───────────────────────────────────────────────────────────


class HeaderMatchType(_Block):
    exact: _NonEmptyStr | None = None
    prefix: _NonEmptyStr | None = None
    contains: _NonEmptyStr | None = None

    @model_validator(mode="after")
    def _check_one_type(self) -> Self:
        _exactly_one(self, "exact", "prefix", "contains")
        return self


class HeaderMatch(_Block):
    name: str | None = None
    case_sensitive: bool = False
    match: HeaderMatchType | None = None


class PathMatchType(_Block):
    exact: _NonEmptyStr | None = None
    prefix: _NonEmptyStr | None = None

    @model_validator(mode="after")
    def _check_one_type(self) -> Self:
        _exactly_one(self, "exact", "prefix")
        return self


class PathMatch(_Block):
    case_sensitive: bool = False
    match: PathMatchType | None = None


class HttpMatch(_Block):
    """Criteria on the HTTP request. Omitted fields match anything."""

    method: str | None = None
    header_matches: list[HeaderMatch] | None = Field(
        default=None,
        min_length=1,
        max_length=5,
        validation_alias=AliasChoices("header_matches", "headers_matches"),
    )
    path_match: PathMatch | None = None


class RuleMatch(_Block):
    http_match: HttpMatch = Field(default_factory=HttpMatch)


# ── Resource ────────────────────────────────────────────────────────


class RuleTimeouts(_Block):
    """Upper bounds (seconds) for waiting on the API."""

    create: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    update: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    delete: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)


class ListenerRuleResource(Resource):
    """A routing rule on a VPC Lattice service listener.

    ``priority`` and ``match.http_match.method`` are optional and computed:
    when omitted they are filled in remotely and never reported as drift.
    Every other part of ``match`` and ``action`` is compared exactly, so
    removing a block from the configuration plans an update.
    """

    resource_type: ClassVar[str] = "lattice_listener_rule"
    namespace: ClassVar[str] = "listener_rule"

    name: Annotated[
        str,
        ForceNew(),
        Field(min_length=3, max_length=128, pattern=r"^[a-z0-9][a-z0-9-]*$"),
    ]
    service_identifier: Annotated[_NonEmptyStr, ForceNew()]
    listener_identifier: Annotated[_NonEmptyStr, ForceNew()]
    priority: int | None = Field(default=None, ge=1, le=100)
    action: Annotated[RuleAction | None, Compare("exact")] = None
    match: Annotated[RuleMatch, Compare("exact", computed=MATCH_COMPUTED_PATHS)]
    timeouts: Annotated[RuleTimeouts, Compare("ignore")] = Field(default_factory=RuleTimeouts)
