"""VPC Lattice resource definitions."""

from lattice_provisioner.resources.base import Resource
from lattice_provisioner.resources.listener_rule import (
    FixedResponseAction,
    ForwardAction,
    HeaderMatch,
    HeaderMatchType,
    HttpMatch,
    ListenerRuleResource,
    PathMatch,
    PathMatchType,
    RuleAction,
    RuleMatch,
    RuleTimeouts,
    WeightedTargetGroup,
)

__all__ = [
    "FixedResponseAction",
    "ForwardAction",
    "HeaderMatch",
    "HeaderMatchType",
    "HttpMatch",
    "ListenerRuleResource",
    "PathMatch",
    "PathMatchType",
    "Resource",
    "RuleAction",
    "RuleMatch",
    "RuleTimeouts",
    "WeightedTargetGroup",
]
