"""Listener rule handler implementing CRUD via the VPC Lattice API."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from botocore.exceptions import ClientError

from lattice_provisioner.engine.errors import PartialCreateError, ResourceImportError
from lattice_provisioner.engine.handlers import ResourceHandler
from lattice_provisioner.engine.listener_rule_mapping import (
    expand_rule_action,
    expand_rule_match,
    flatten_rule_action,
    flatten_rule_match,
    flatten_tags,
    merge_tags,
)
from lattice_provisioner.engine.waiters import WaitError, wait_for_state
from lattice_provisioner.resources.listener_rule import (
    DEFAULT_TIMEOUT_SECONDS,
    MATCH_COMPUTED_PATHS,
    ListenerRuleResource,
    RuleTimeouts,
)
from lattice_provisioner.resources.markers import drop_unset_computed

if TYPE_CHECKING:
    from lattice_provisioner.core.state import ResourceInstance
    from lattice_provisioner.engine.handlers import EngineContext, PlanContext

logger = logging.getLogger(__name__)

MIN_PRIORITY = 1
MAX_PRIORITY = 100

_NOT_FOUND = "ResourceNotFoundException"
_STATUS_ACTIVE = "ACTIVE"


def _is_not_found(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == _NOT_FOUND


def parse_import_id(import_id: str) -> tuple[str, str, str]:
    """Split ``service/listener/rule`` into its three identifiers."""
    parts = import_id.split("/")
    if len(parts) != 3 or not all(parts):
        raise ResourceImportError(
            f"Invalid import ID {import_id!r}; expected "
            "'service_identifier/listener_identifier/rule_id'"
        )
    return parts[0], parts[1], parts[2]


class ListenerRuleHandler(ResourceHandler[ListenerRuleResource]):
    """CRUD handler for VPC Lattice listener rules."""

    # Seconds between GetRule calls while waiting on create/delete.
    poll_interval: float = 5.0

    # ── Validation / planning ───────────────────────────────────────

    def validate(self, ctx: EngineContext, desired: ListenerRuleResource) -> list[str]:
        _ = ctx
        if desired.action is None:
            return [f"{desired.address}: an action block is required"]
        return []

    def validate_plan(
        self,
        ctx: EngineContext,
        desired: ListenerRuleResource,
        plan_ctx: PlanContext,
    ) -> list[str]:
        _ = ctx
        if desired.priority is None:
            return []
        clashes = [
            other.address
            for other in plan_ctx.desired_of_type(desired.resource_type)
            if isinstance(other, ListenerRuleResource)
            and other.address != desired.address
            and other.priority == desired.priority
            and other.service_identifier == desired.service_identifier
            and other.listener_identifier == desired.listener_identifier
        ]
        if clashes:
            return [
                f"{desired.address}: priority {desired.priority} is also used by "
                f"{', '.join(clashes)} on the same listener"
            ]
        return []

    def planned_attrs(self, ctx: EngineContext, desired: ListenerRuleResource) -> dict[str, Any]:
        return {"tags_all": merge_tags(ctx.provider.default_tags, desired.tags)}

    # ── Helpers ─────────────────────────────────────────────────────

    def _get_rule(
        self, client: Any, service: str, listener: str, rule_id: str
    ) -> dict[str, Any] | None:
        try:
            out = client.get_rule(
                serviceIdentifier=service,
                listenerIdentifier=listener,
                ruleIdentifier=rule_id,
            )
        except ClientError as exc:
            if _is_not_found(exc):
                return None
            raise
        if not out or not out.get("id"):
            msg = f"Empty result reading listener rule {rule_id!r}"
            raise RuntimeError(msg)
        return out

    def _status_refresh(self, client: Any, service: str, listener: str, rule_id: str) -> Any:
        def refresh() -> tuple[dict[str, Any] | None, str]:
            out = self._get_rule(client, service, listener, rule_id)
            return out, (_STATUS_ACTIVE if out is not None else "")

        return refresh

    def wait_rule_created(
        self, client: Any, service: str, listener: str, rule_id: str, timeout: float
    ) -> dict[str, Any]:
        """Wait until the new rule is consistently readable."""
        return wait_for_state(
            self._status_refresh(client, service, listener, rule_id),
            pending=(),
            target={_STATUS_ACTIVE},
            timeout=timeout,
            poll_interval=self.poll_interval,
            not_found_checks=20,
            continuous_target_occurence=2,
        )

    def wait_rule_deleted(
        self, client: Any, service: str, listener: str, rule_id: str, timeout: float
    ) -> None:
        """Wait until the rule no longer reads back."""
        wait_for_state(
            self._status_refresh(client, service, listener, rule_id),
            pending={_STATUS_ACTIVE},
            target=(),
            timeout=timeout,
            poll_interval=self.poll_interval,
        )

    def _next_free_priority(self, client: Any, service: str, listener: str) -> int:
        """Lowest priority not taken by an existing rule on the listener."""
        taken: set[int] = set()
        paginator = client.get_paginator("list_rules")
        for page in paginator.paginate(serviceIdentifier=service, listenerIdentifier=listener):
            for item in page.get("items", []):
                if not item.get("isDefault") and item.get("priority") is not None:
                    taken.add(item["priority"])
        for priority in range(MIN_PRIORITY, MAX_PRIORITY + 1):
            if priority not in taken:
                return priority
        msg = f"No free rule priority left on listener {listener!r}"
        raise RuntimeError(msg)

    def _read_attrs(
        self,
        ctx: EngineContext,
        out: dict[str, Any],
        *,
        service: str,
        listener: str,
        configured_tags: dict[str, str] | None,
        timeouts: dict[str, Any] | None,
    ) -> dict[str, Any]:
        """Map a GetRule response onto the resource's attribute layout."""
        client = ctx.provider.client
        tags_all = dict(client.list_tags_for_resource(resourceArn=out["arn"]).get("tags") or {})

        attrs: dict[str, Any] = {
            "name": out.get("name"),
            "service_identifier": service,
            "listener_identifier": listener,
            "id": out["id"],
            "arn": out.get("arn"),
            "match": flatten_rule_match(out.get("match")),
            "tags": flatten_tags(tags_all, ctx.provider.default_tags, configured_tags),
            "tags_all": tags_all,
            "timeouts": timeouts or RuleTimeouts().model_dump(),
        }
        if out.get("priority") is not None:
            attrs["priority"] = out["priority"]
        if (action := flatten_rule_action(out.get("action"))) is not None:
            attrs["action"] = action
        return attrs

    def _refresh_attrs(
        self, ctx: EngineContext, attrs: dict[str, Any], out: dict[str, Any]
    ) -> dict[str, Any]:
        return self._read_attrs(
            ctx,
            out,
            service=attrs["service_identifier"],
            listener=attrs["listener_identifier"],
            configured_tags=attrs.get("tags"),
            timeouts=attrs.get("timeouts"),
        )

    # ── CRUD ────────────────────────────────────────────────────────

    def create(self, ctx: EngineContext, desired: ListenerRuleResource) -> dict[str, Any]:
        """Create a listener rule and wait for it to become readable.

        Once ``CreateRule`` has returned, any later failure raises
        :class:`PartialCreateError` carrying the new rule's identity.
        """
        client = ctx.provider.client
        service, listener = desired.service_identifier, desired.listener_identifier
        dumped = desired.model_dump(exclude_none=True)
        failed = f"Failed to create listener rule '{desired.name}'"

        try:
            priority = desired.priority
            if priority is None:
                priority = self._next_free_priority(client, service, listener)
                logger.info("Assigned priority %d to %s", priority, desired.address)

            request: dict[str, Any] = {
                "clientToken": str(uuid.uuid4()),
                "serviceIdentifier": service,
                "listenerIdentifier": listener,
                "name": desired.name,
                "priority": priority,
                "match": expand_rule_match(dumped.get("match")),
                "action": expand_rule_action(dumped.get("action")),
            }
            if tags_all := merge_tags(ctx.provider.default_tags, desired.tags):
                request["tags"] = tags_all

            out = client.create_rule(**request)
        except ClientError as exc:
            raise RuntimeError(f"{failed}: {exc}") from exc

        rule_id = out["id"]
        logger.debug("Created listener rule %s (%s)", desired.name, rule_id)
        created = {
            "name": desired.name,
            "service_identifier": service,
            "listener_identifier": listener,
            "id": rule_id,
            "arn": out.get("arn"),
            "tags": dict(desired.tags),
            "timeouts": desired.timeouts.model_dump(),
        }
        try:
            rule = self.wait_rule_created(
                client, service, listener, rule_id, desired.timeouts.create
            )
            return self._read_attrs(
                ctx,
                rule,
                service=service,
                listener=listener,
                configured_tags=desired.tags,
                timeouts=desired.timeouts.model_dump(),
            )
        except (ClientError, WaitError, RuntimeError) as exc:
            raise PartialCreateError(f"{failed}: {exc}", attributes=created) from exc

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        """Read a listener rule. Returns None if it no longer exists."""
        attrs = prior.attributes
        rule_id = attrs.get("id")
        if not rule_id:
            msg = f"{prior.address} has no rule id in state"
            raise RuntimeError(msg)

        out = self._get_rule(
            ctx.provider.client, attrs["service_identifier"], attrs["listener_identifier"], rule_id
        )
        if out is None:
            return None
        return self._refresh_attrs(ctx, attrs, out)

    def update(
        self, ctx: EngineContext, desired: ListenerRuleResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        """Update action, match, priority and tags in place."""
        client = ctx.provider.client
        attrs = prior.attributes
        rule_id = attrs["id"]
        service, listener = desired.service_identifier, desired.listener_identifier
        dumped = desired.model_dump(exclude_none=True)

        request: dict[str, Any] = {}
        if "action" in dumped and dumped["action"] != attrs.get("action"):
            request["action"] = expand_rule_action(dumped["action"])
        prior_match = drop_unset_computed(dumped["match"], attrs.get("match"), MATCH_COMPUTED_PATHS)
        if dumped["match"] != prior_match:
            request["match"] = expand_rule_match(dumped["match"])
        if desired.priority is not None and desired.priority != attrs.get("priority"):
            request["priority"] = desired.priority

        if request:
            client.update_rule(
                serviceIdentifier=service,
                listenerIdentifier=listener,
                ruleIdentifier=rule_id,
                **request,
            )
            logger.debug("Updated listener rule %s: %s", desired.name, sorted(request))

        old_tags = attrs.get("tags_all") or {}
        new_tags = merge_tags(ctx.provider.default_tags, desired.tags)
        if removed := sorted(set(old_tags) - set(new_tags)):
            client.untag_resource(resourceArn=attrs["arn"], tagKeys=removed)
        if changed := {k: v for k, v in new_tags.items() if old_tags.get(k) != v}:
            client.tag_resource(resourceArn=attrs["arn"], tags=changed)

        out = self._get_rule(client, service, listener, rule_id)
        if out is None:
            msg = f"Listener rule '{desired.name}' disappeared during update"
            raise RuntimeError(msg)
        return self._read_attrs(
            ctx,
            out,
            service=service,
            listener=listener,
            configured_tags=desired.tags,
            timeouts=desired.timeouts.model_dump(),
        )

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        """Delete a listener rule and wait until it is gone."""
        client = ctx.provider.client
        attrs = prior.attributes
        service, listener = attrs["service_identifier"], attrs["listener_identifier"]
        rule_id = attrs["id"]

        try:
            client.delete_rule(
                serviceIdentifier=service,
                listenerIdentifier=listener,
                ruleIdentifier=rule_id,
            )
        except ClientError as exc:
            if _is_not_found(exc):
                logger.warning("%s was already deleted", prior.address)
                return
            raise

        timeout = (attrs.get("timeouts") or {}).get("delete", DEFAULT_TIMEOUT_SECONDS)
        self.wait_rule_deleted(client, service, listener, rule_id, timeout)

    def import_resource(self, ctx: EngineContext, import_id: str) -> dict[str, Any]:
        """Read an existing rule by ``service/listener/rule_id``."""
        service, listener, rule_id = parse_import_id(import_id)
        out = self._get_rule(ctx.provider.client, service, listener, rule_id)
        if out is None:
            raise ResourceImportError(f"Listener rule {import_id!r} not found")
        if out.get("isDefault"):
            raise ResourceImportError(
                f"Listener rule {import_id!r} is the listener's default rule and cannot be imported"
            )
        return self._read_attrs(
            ctx,
            out,
            service=service,
            listener=listener,
            configured_tags=None,
            timeouts=None,
        )

