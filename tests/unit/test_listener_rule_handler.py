"""Tests for the ListenerRuleHandler."""

from __future__ import annotations

from typing import Any
from unittest.mock import ANY, MagicMock

import pytest
from botocore.exceptions import ClientError

from lattice_provisioner.core import LatticeProvider, ResourceInstance
from lattice_provisioner.core.state import State
from lattice_provisioner.engine.errors import PartialCreateError, ResourceImportError
from lattice_provisioner.engine.handlers import EngineContext, PlanContext
from lattice_provisioner.engine.listener_rule_handler import ListenerRuleHandler, parse_import_id
from lattice_provisioner.resources.listener_rule import ListenerRuleResource

ARN = "arn:aws:vpc-lattice:us-west-2:111122223333:service/svc-1/listener/lst-1/rule/rule-1"


def _client_error(code: str, op: str = "GetRule") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "nope"}}, op)


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.list_tags_for_resource.return_value = {"tags": {"team": "net", "env": "prod"}}
    client.get_paginator.return_value.paginate.return_value = [{"items": []}]
    return client


@pytest.fixture
def ctx(mock_client: MagicMock) -> EngineContext:
    provider = LatticeProvider.from_client(mock_client, default_tags={"team": "net"})
    return EngineContext(provider=provider, workspace="default")


@pytest.fixture
def handler() -> ListenerRuleHandler:
    h = ListenerRuleHandler()
    h.poll_interval = 0
    return h


def _rule(**overrides: Any) -> ListenerRuleResource:
    data: dict[str, Any] = {
        "name": "api-rule",
        "service_identifier": "svc-1",
        "listener_identifier": "lst-1",
        "match": {"http_match": {"path_match": {"match": {"prefix": "/api"}}}},
        "action": {"fixed_response": {"status_code": 404}},
        "tags": {"env": "prod"},
    }
    data.update(overrides)
    return ListenerRuleResource.model_validate(data)


def _api_rule(**overrides: Any) -> dict[str, Any]:
    out: dict[str, Any] = {
        "arn": ARN,
        "id": "rule-1",
        "name": "api-rule",
        "isDefault": False,
        "priority": 10,
        "match": {
            "httpMatch": {
                "method": "GET",
                "pathMatch": {"caseSensitive": False, "match": {"prefix": "/api"}},
            }
        },
        "action": {"fixedResponse": {"statusCode": 404}},
    }
    out.update(overrides)
    return out


def _prior(**attr_overrides: Any) -> ResourceInstance:
    attrs: dict[str, Any] = {
        "name": "api-rule",
        "service_identifier": "svc-1",
        "listener_identifier": "lst-1",
        "id": "rule-1",
        "arn": ARN,
        "priority": 10,
        "match": {
            "http_match": {
                "method": "GET",
                "path_match": {"case_sensitive": False, "match": {"prefix": "/api"}},
            }
        },
        "action": {"fixed_response": {"status_code": 404}},
        "tags": {"env": "prod"},
        "tags_all": {"team": "net", "env": "prod"},
        "timeouts": {"create": 1800.0, "update": 1800.0, "delete": 60.0},
    }
    attrs.update(attr_overrides)
    return ResourceInstance(
        address="lattice_listener_rule.api-rule",
        resource_type="lattice_listener_rule",
        name="api-rule",
        attributes=attrs,
    )


class TestValidate:
    def test_requires_action(self, ctx: EngineContext, handler: ListenerRuleHandler) -> None:
        errors = handler.validate(ctx, _rule(action=None))
        assert errors == ["lattice_listener_rule.api-rule: an action block is required"]

    def test_valid(self, ctx: EngineContext, handler: ListenerRuleHandler) -> None:
        assert handler.validate(ctx, _rule()) == []

    def test_duplicate_priority_on_same_listener(
        self, ctx: EngineContext, handler: ListenerRuleHandler
    ) -> None:
        a = _rule(name="rule-a", priority=5)
        b = _rule(name="rule-b", priority=5)
        c = _rule(name="rule-c", priority=5, listener_identifier="lst-2")
        plan_ctx = PlanContext({r.address: r for r in (a, b, c)}, State(workspace="default"))

        errors = handler.validate_plan(ctx, a, plan_ctx)

        assert len(errors) == 1
        assert "lattice_listener_rule.rule-b" in errors[0]
        assert "rule-c" not in errors[0]

    def test_unset_priorities_never_clash(
        self, ctx: EngineContext, handler: ListenerRuleHandler
    ) -> None:
        a, b = _rule(name="rule-a"), _rule(name="rule-b")
        plan_ctx = PlanContext({a.address: a, b.address: b}, State(workspace="default"))
        assert handler.validate_plan(ctx, a, plan_ctx) == []

    def test_planned_attrs_merge_default_tags(
        self, ctx: EngineContext, handler: ListenerRuleHandler
    ) -> None:
        assert handler.planned_attrs(ctx, _rule()) == {
            "tags_all": {"team": "net", "env": "prod"}
        }


class TestCreate:
    def test_creates_rule_and_waits(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.create_rule.return_value = {"id": "rule-1", "arn": ARN}
        mock_client.get_rule.return_value = _api_rule()

        result = handler.create(ctx, _rule(priority=10))

        mock_client.create_rule.assert_called_once_with(
            clientToken=ANY,
            serviceIdentifier="svc-1",
            listenerIdentifier="lst-1",
            name="api-rule",
            priority=10,
            match={
                "httpMatch": {"pathMatch": {"caseSensitive": False, "match": {"prefix": "/api"}}}
            },
            action={"fixedResponse": {"statusCode": 404}},
            tags={"team": "net", "env": "prod"},
        )
        assert mock_client.get_rule.call_count == 2
        mock_client.get_paginator.assert_not_called()
        assert result["id"] == "rule-1"
        assert result["arn"] == ARN
        assert result["priority"] == 10
        assert result["tags"] == {"env": "prod"}
        assert result["tags_all"] == {"team": "net", "env": "prod"}
        assert result["match"]["http_match"]["method"] == "GET"

    def test_client_token_is_unique(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.create_rule.return_value = {"id": "rule-1"}
        mock_client.get_rule.return_value = _api_rule()

        handler.create(ctx, _rule(priority=1))
        handler.create(ctx, _rule(priority=1))

        tokens = {c.kwargs["clientToken"] for c in mock_client.create_rule.call_args_list}
        assert len(tokens) == 2

    def test_assigns_lowest_free_priority(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_paginator.return_value.paginate.return_value = [
            {"items": [{"id": "r1", "priority": 1}, {"id": "default", "isDefault": True}]},
            {"items": [{"id": "r2", "priority": 2}, {"id": "r4", "priority": 4}]},
        ]
        mock_client.create_rule.return_value = {"id": "rule-1"}
        mock_client.get_rule.return_value = _api_rule(priority=3)

        result = handler.create(ctx, _rule())

        mock_client.get_paginator.assert_called_once_with("list_rules")
        mock_client.get_paginator.return_value.paginate.assert_called_once_with(
            serviceIdentifier="svc-1", listenerIdentifier="lst-1"
        )
        assert mock_client.create_rule.call_args.kwargs["priority"] == 3
        assert result["priority"] == 3

    def test_no_free_priority(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_paginator.return_value.paginate.return_value = [
            {"items": [{"priority": p} for p in range(1, 101)]}
        ]
        with pytest.raises(RuntimeError, match="No free rule priority"):
            handler.create(ctx, _rule())
        mock_client.create_rule.assert_not_called()

    def test_omits_empty_tags(
        self, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        ctx = EngineContext(provider=LatticeProvider.from_client(mock_client), workspace="w")
        mock_client.create_rule.return_value = {"id": "rule-1"}
        mock_client.get_rule.return_value = _api_rule()

        handler.create(ctx, _rule(priority=1, tags={}))

        assert "tags" not in mock_client.create_rule.call_args.kwargs

    def test_wraps_api_error(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.create_rule.side_effect = _client_error("ConflictException", "CreateRule")

        with pytest.raises(RuntimeError, match="Failed to create listener rule 'api-rule'"):
            handler.create(ctx, _rule(priority=1))

    def test_wraps_wait_failure(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.create_rule.return_value = {"id": "rule-1", "arn": ARN}
        mock_client.get_rule.side_effect = _client_error("ResourceNotFoundException")

        with pytest.raises(PartialCreateError, match="Failed to create listener rule") as excinfo:
            handler.create(ctx, _rule(priority=1))

        assert mock_client.get_rule.call_count == 21
        assert excinfo.value.__cause__ is not None
        assert excinfo.value.attributes["id"] == "rule-1"
        assert excinfo.value.attributes["arn"] == ARN
        assert excinfo.value.attributes["listener_identifier"] == "lst-1"

    def test_wraps_tag_read_failure_after_create(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.create_rule.return_value = {"id": "rule-1", "arn": ARN}
        mock_client.get_rule.return_value = _api_rule()
        mock_client.list_tags_for_resource.side_effect = _client_error(
            "ThrottlingException", "ListTagsForResource"
        )

        with pytest.raises(
            PartialCreateError, match="Failed to create listener rule 'api-rule'"
        ) as excinfo:
            handler.create(ctx, _rule(priority=1))

        assert isinstance(excinfo.value.__cause__, ClientError)
        assert excinfo.value.attributes["id"] == "rule-1"


class TestRead:
    def test_returns_attributes(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.return_value = _api_rule()

        result = handler.read(ctx, _prior())

        mock_client.get_rule.assert_called_once_with(
            serviceIdentifier="svc-1", listenerIdentifier="lst-1", ruleIdentifier="rule-1"
        )
        mock_client.list_tags_for_resource.assert_called_once_with(resourceArn=ARN)
        assert result == _prior().attributes

    def test_returns_none_when_not_found(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.side_effect = _client_error("ResourceNotFoundException")
        assert handler.read(ctx, _prior()) is None

    def test_other_errors_propagate(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.side_effect = _client_error("AccessDeniedException")
        with pytest.raises(ClientError):
            handler.read(ctx, _prior())

    def test_empty_result_is_error(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.return_value = {}
        with pytest.raises(RuntimeError, match="Empty result"):
            handler.read(ctx, _prior())

    def test_missing_id_in_state(self, ctx: EngineContext, handler: ListenerRuleHandler) -> None:
        with pytest.raises(RuntimeError, match="no rule id"):
            handler.read(ctx, _prior(id=""))

    def test_action_omitted_when_absent(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.return_value = _api_rule(action=None)
        result = handler.read(ctx, _prior())
        assert result is not None
        assert "action" not in result


class TestUpdate:
    def test_updates_changed_fields_and_tags(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.return_value = _api_rule(
            priority=20, action={"fixedResponse": {"statusCode": 503}}
        )
        desired = _rule(
            priority=20,
            action={"fixed_response": {"status_code": 503}},
            tags={"owner": "me"},
        )
        prior = _prior(tags_all={"team": "net", "env": "prod", "stale": "x"})

        handler.update(ctx, desired, prior)

        kwargs = mock_client.update_rule.call_args.kwargs
        assert kwargs["ruleIdentifier"] == "rule-1"
        assert kwargs["priority"] == 20
        assert kwargs["action"] == {"fixedResponse": {"statusCode": 503}}
        mock_client.untag_resource.assert_called_once_with(
            resourceArn=ARN, tagKeys=["env", "stale"]
        )
        mock_client.tag_resource.assert_called_once_with(resourceArn=ARN, tags={"owner": "me"})

    def test_tag_only_change_skips_update_rule(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.return_value = _api_rule()
        desired = _rule(
            priority=10,
            match={
                "http_match": {"method": "GET", "path_match": {"match": {"prefix": "/api"}}}
            },
            tags={"env": "staging"},
        )

        handler.update(ctx, desired, _prior())

        mock_client.update_rule.assert_not_called()
        mock_client.untag_resource.assert_not_called()
        mock_client.tag_resource.assert_called_once_with(
            resourceArn=ARN, tags={"env": "staging"}
        )

    def test_removed_path_match_is_sent(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.return_value = _api_rule(match={"httpMatch": {"method": "GET"}})

        handler.update(ctx, _rule(priority=10, match={"http_match": {}}), _prior())

        mock_client.update_rule.assert_called_once_with(
            serviceIdentifier="svc-1",
            listenerIdentifier="lst-1",
            ruleIdentifier="rule-1",
            match={"httpMatch": {}},
        )

    def test_computed_method_alone_skips_update_rule(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.return_value = _api_rule()

        handler.update(ctx, _rule(priority=10), _prior())

        mock_client.update_rule.assert_not_called()

    def test_raises_when_rule_disappears(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.side_effect = _client_error("ResourceNotFoundException")
        with pytest.raises(RuntimeError, match="disappeared"):
            handler.update(ctx, _rule(priority=11), _prior())


class TestDelete:
    def test_deletes_and_waits(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.side_effect = [
            _api_rule(),
            _client_error("ResourceNotFoundException"),
        ]

        handler.delete(ctx, _prior())

        mock_client.delete_rule.assert_called_once_with(
            serviceIdentifier="svc-1", listenerIdentifier="lst-1", ruleIdentifier="rule-1"
        )
        assert mock_client.get_rule.call_count == 2

    def test_already_gone_is_success(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.delete_rule.side_effect = _client_error(
            "ResourceNotFoundException", "DeleteRule"
        )

        handler.delete(ctx, _prior())

        mock_client.get_rule.assert_not_called()

    def test_other_errors_propagate(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.delete_rule.side_effect = _client_error("ConflictException", "DeleteRule")
        with pytest.raises(ClientError):
            handler.delete(ctx, _prior())


class TestImport:
    def test_parse_import_id(self) -> None:
        assert parse_import_id("svc-1/lst-1/rule-1") == ("svc-1", "lst-1", "rule-1")

    @pytest.mark.parametrize("bad", ["rule-1", "svc/lst", "svc//rule", "a/b/c/d"])
    def test_parse_import_id_rejects_malformed(self, bad: str) -> None:
        with pytest.raises(ResourceImportError, match="Invalid import ID"):
            parse_import_id(bad)

    def test_imports_rule(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.return_value = _api_rule()

        attrs = handler.import_resource(ctx, "svc-1/lst-1/rule-1")

        assert attrs["name"] == "api-rule"
        assert attrs["service_identifier"] == "svc-1"
        assert attrs["listener_identifier"] == "lst-1"
        assert attrs["tags"] == {"env": "prod"}
        assert attrs["timeouts"]["delete"] == 1800

    def test_rejects_default_rule(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.return_value = _api_rule(isDefault=True)
        with pytest.raises(ResourceImportError, match="default rule"):
            handler.import_resource(ctx, "svc-1/lst-1/rule-1")

    def test_missing_rule(
        self, ctx: EngineContext, handler: ListenerRuleHandler, mock_client: MagicMock
    ) -> None:
        mock_client.get_rule.side_effect = _client_error("ResourceNotFoundException")
        with pytest.raises(ResourceImportError, match="not found"):
            handler.import_resource(ctx, "svc-1/lst-1/rule-1")
