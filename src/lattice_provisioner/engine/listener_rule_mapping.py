"""Conversion between listener rule attributes and VPC Lattice API shapes.

``expand_*`` turns the snake_case attribute maps stored in plans and state into
the camelCase request members the API expects; ``flatten_*`` does the reverse
for API responses. Tagged unions (rule action, match types) are dicts with a
single member key. Absent members are omitted rather than set to ``None`` so
flattened output compares cleanly against ``model_dump(exclude_none=True)``.
"""

from __future__ import annotations

from typing import Any

_HEADER_MATCH_TYPES = ("exact", "prefix", "contains")
_PATH_MATCH_TYPES = ("exact", "prefix")


def _match_type(block: dict[str, Any] | None, members: tuple[str, ...]) -> dict[str, str] | None:
    """Pick the single populated member of a match-type union."""
    if not block:
        return None
    for member in members:
        value = block.get(member)
        if value:
            return {member: value}
    return None


# ── Action ──────────────────────────────────────────────────────────


def expand_weighted_target_groups(entries: list[Any] | None) -> list[dict[str, Any]]:
    api_objects: list[dict[str, Any]] = []
    for block in entries or []:
        if not isinstance(block, dict):
            continue
        api_object: dict[str, Any] = {}
        if block.get("target_group_identifier"):
            api_object["targetGroupIdentifier"] = block["target_group_identifier"]
        if block.get("weight") is not None:
            api_object["weight"] = block["weight"]
        api_objects.append(api_object)
    return api_objects


def expand_rule_action(block: dict[str, Any] | None) -> dict[str, Any] | None:
    """Build the ``RuleAction`` union member from an ``action`` block."""
    if not block:
        return None
    if fixed := block.get("fixed_response"):
        return {"fixedResponse": {"statusCode": fixed["status_code"]}}
    if forward := block.get("forward"):
        return {
            "forward": {"targetGroups": expand_weighted_target_groups(forward.get("target_groups"))}
        }
    return None


def flatten_weighted_target_groups(api_objects: list[dict[str, Any]] | None) -> list[Any]:
    entries: list[dict[str, Any]] = []
    for api_object in api_objects or []:
        block: dict[str, Any] = {}
        if (v := api_object.get("targetGroupIdentifier")) is not None:
            block["target_group_identifier"] = v
        if (v := api_object.get("weight")) is not None:
            block["weight"] = v
        entries.append(block)
    return entries


def flatten_rule_action(api_object: dict[str, Any] | None) -> dict[str, Any] | None:
    if not api_object:
        return None
    if (fixed := api_object.get("fixedResponse")) is not None:
        fixed_block: dict[str, Any] = {}
        if (v := fixed.get("statusCode")) is not None:
            fixed_block["status_code"] = v
        return {"fixed_response": fixed_block}
    if (forward := api_object.get("forward")) is not None:
        return {
            "forward": {
                "target_groups": flatten_weighted_target_groups(forward.get("targetGroups"))
            }
        }
    return None


# ── Match ───────────────────────────────────────────────────────────


def expand_header_match(block: dict[str, Any]) -> dict[str, Any]:
    api_object: dict[str, Any] = {}
    if block.get("case_sensitive") is not None:
        api_object["caseSensitive"] = block["case_sensitive"]
    if block.get("name") is not None:
        api_object["name"] = block["name"]
    if (match := _match_type(block.get("match"), _HEADER_MATCH_TYPES)) is not None:
        api_object["match"] = match
    return api_object


def expand_header_matches(entries: list[Any] | None) -> list[dict[str, Any]]:
    return [expand_header_match(m) for m in entries or [] if isinstance(m, dict)]


def expand_path_match(block: dict[str, Any]) -> dict[str, Any]:
    api_object: dict[str, Any] = {}
    if block.get("case_sensitive") is not None:
        api_object["caseSensitive"] = block["case_sensitive"]
    if (match := _match_type(block.get("match"), _PATH_MATCH_TYPES)) is not None:
        api_object["match"] = match
    return api_object


def expand_http_match(block: dict[str, Any] | None) -> dict[str, Any]:
    api_object: dict[str, Any] = {}
    if not block:
        return api_object
    if block.get("method"):
        api_object["method"] = block["method"]
    if header_matches := expand_header_matches(block.get("header_matches")):
        api_object["headerMatches"] = header_matches
    if path_match := block.get("path_match"):
        api_object["pathMatch"] = expand_path_match(path_match)
    return api_object


def expand_rule_match(block: dict[str, Any] | None) -> dict[str, Any]:
    """Build the ``RuleMatch`` union; HTTP match is its only member."""
    return {"httpMatch": expand_http_match((block or {}).get("http_match"))}


def _flatten_match_type(api_object: dict[str, Any] | None, members: tuple[str, ...]) -> Any:
    if not api_object:
        return None
    for member in members:
        if (v := api_object.get(member)) is not None:
            return {member: v}
    return None


def flatten_header_match(api_object: dict[str, Any]) -> dict[str, Any]:
    block: dict[str, Any] = {"case_sensitive": bool(api_object.get("caseSensitive", False))}
    if (v := api_object.get("name")) is not None:
        block["name"] = v
    if (match := _flatten_match_type(api_object.get("match"), _HEADER_MATCH_TYPES)) is not None:
        block["match"] = match
    return block


def flatten_header_matches(api_objects: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    return [flatten_header_match(m) for m in api_objects or []]


def flatten_path_match(api_object: dict[str, Any]) -> dict[str, Any]:
    block: dict[str, Any] = {"case_sensitive": bool(api_object.get("caseSensitive", False))}
    if (match := _flatten_match_type(api_object.get("match"), _PATH_MATCH_TYPES)) is not None:
        block["match"] = match
    return block


def flatten_http_match(api_object: dict[str, Any] | None) -> dict[str, Any]:
    block: dict[str, Any] = {}
    if not api_object:
        return block
    if (v := api_object.get("method")) is not None:
        block["method"] = v
    if header_matches := api_object.get("headerMatches"):
        block["header_matches"] = flatten_header_matches(header_matches)
    if (path_match := api_object.get("pathMatch")) is not None:
        block["path_match"] = flatten_path_match(path_match)
    return block


def flatten_rule_match(api_object: dict[str, Any] | None) -> dict[str, Any]:
    """Mirror of :func:`expand_rule_match`: ``http_match`` is always present."""
    return {"http_match": flatten_http_match((api_object or {}).get("httpMatch"))}


# ── Tags ────────────────────────────────────────────────────────────


def merge_tags(default_tags: dict[str, str] | None, tags: dict[str, str] | None) -> dict[str, str]:
    """Provider default tags overlaid with resource tags (resource wins)."""
    return {**(default_tags or {}), **(tags or {})}


def flatten_tags(
    tags_all: dict[str, str],
    default_tags: dict[str, str] | None,
    configured: dict[str, str] | None = None,
) -> dict[str, str]:
    """Recover resource-level ``tags`` from the remote tag set.

    A key belongs to the resource when it was configured on it, or when it is
    not a provider default (or overrides one with a different value).
    """
    default_tags = default_tags or {}
    configured = configured or {}
    return {
        k: v
        for k, v in tags_all.items()
        if k in configured or k not in default_tags or default_tags[k] != v
    }
