from __future__ import annotations

import re

from lattice_provisioner.cli.formatting import (
    changes_summary,
    format_apply_summary,
    format_change,
    format_changes,
    format_plan,
    format_plan_summary,
    has_actionable_changes,
)
from lattice_provisioner.engine.types import Action, Plan, PlanMetadata, ResourceChange

_META = PlanMetadata(
    workspace="default",
    destroy=False,
    refresh=True,
    state_lineage="lineage-1",
    state_serial=0,
    state_digest="digest",
    config_digest="cdigest",
    engine_version="0.1.0",
)

_TYPE = "lattice_listener_rule"


def _strip_ansi(text: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", text)


def _change(name: str, action: Action, **kwargs) -> ResourceChange:
    return ResourceChange(address=f"{_TYPE}.{name}", resource_type=_TYPE, action=action, **kwargs)


class TestFormatPlanSummary:
    def test_all_zeros(self) -> None:
        result = format_plan_summary({"create": 0, "update": 0, "delete": 0}, color=False)
        assert result == "Plan: 0 to add, 0 to change, 0 to destroy."

    def test_with_counts(self) -> None:
        result = format_plan_summary({"create": 2, "update": 1, "delete": 3}, color=False)
        assert result == "Plan: 2 to add, 1 to change, 3 to destroy."

    def test_replace_counts_as_add_and_destroy(self) -> None:
        result = format_plan_summary(
            {"create": 1, "update": 0, "replace": 2, "delete": 0}, color=False
        )
        assert result == "Plan: 3 to add, 0 to change, 2 to destroy."

    def test_custom_header(self) -> None:
        result = format_plan_summary({"update": 1}, color=False, header="Refresh")
        assert result == "Refresh: 0 to add, 1 to change, 0 to destroy."

    def test_color_mode_contains_ansi(self) -> None:
        result = format_plan_summary({"create": 1, "update": 0, "delete": 0}, color=True)
        assert "\x1b[" in result
        assert "1 to add" in _strip_ansi(result)


class TestFormatApplySummary:
    def test_all_zeros(self) -> None:
        result = format_apply_summary({"create": 0, "update": 0, "delete": 0}, color=False)
        assert "Apply complete!" in result
        assert "0 added" in result

    def test_with_counts(self) -> None:
        result = format_apply_summary({"create": 1, "update": 2, "delete": 0}, color=False)
        assert "1 added" in result
        assert "2 changed" in result

    def test_replace(self) -> None:
        result = format_apply_summary({"replace": 1}, color=False)
        assert result.endswith("Resources: 1 added, 0 changed, 1 destroyed.")

    def test_color_mode_contains_ansi(self) -> None:
        result = format_apply_summary({"create": 1, "update": 0, "delete": 0}, color=True)
        assert "\x1b[" in result


class TestChangesSummary:
    def test_counts_by_action(self) -> None:
        changes = [
            _change("a", Action.CREATE),
            _change("b", Action.REPLACE),
            _change("c", Action.NOOP),
            _change("d", Action.DELETE),
        ]
        assert changes_summary(changes) == {"create": 1, "update": 0, "replace": 1, "delete": 1}


class TestFormatChange:
    def test_create(self) -> None:
        change = _change(
            "api",
            Action.CREATE,
            planned={"service_identifier": "svc-1", "priority": 10},
        )
        result = format_change(change, color=False)
        assert "will be created" in result
        assert '+ resource "lattice_listener_rule" "api"' in result
        assert 'service_identifier = "svc-1"' in result
        assert re.search(r"priority\s+= 10", result)

    def test_update(self) -> None:
        change = _change("api", Action.UPDATE, diff={"priority": {"from": 10, "to": 20}})
        result = format_change(change, color=False)
        assert "will be updated in-place" in result
        assert "~ resource" in result
        assert "~ priority = 10 -> 20" in result

    def test_replace_marks_forcing_attributes(self) -> None:
        change = _change(
            "api",
            Action.REPLACE,
            diff={
                "listener_identifier": {"from": "lst-1", "to": "lst-2"},
                "priority": {"from": 10, "to": 20},
            },
            replace_paths=["listener_identifier"],
        )
        result = format_change(change, color=False)
        assert "must be replaced" in result
        assert "-/+ resource" in result
        assert '"lst-1" -> "lst-2" # forces replacement' in result
        priority_line = next(line for line in result.splitlines() if "priority" in line)
        assert "forces replacement" not in priority_line

    def test_null_value(self) -> None:
        change = _change("api", Action.UPDATE, diff={"priority": {"from": None, "to": 5}})
        assert "null -> 5" in format_change(change, color=False)

    def test_delete(self) -> None:
        change = _change("old", Action.DELETE, prior={"id": "rule-1"})
        result = format_change(change, color=False)
        assert "will be destroyed" in result
        assert "- resource" in result

    def test_noop(self) -> None:
        result = format_change(_change("ok", Action.NOOP), color=False)
        assert "is up-to-date" in result

    def test_no_color_has_no_ansi(self) -> None:
        change = _change("api", Action.CREATE, planned={"priority": 1})
        assert "\x1b[" not in format_change(change, color=False)


class TestFormatPlan:
    def test_no_changes(self) -> None:
        plan = Plan(metadata=_META, changes=[_change("ok", Action.NOOP)])
        assert "No changes" in format_plan(plan, color=False)

    def test_skips_noop(self) -> None:
        plan = Plan(
            metadata=_META,
            changes=[
                _change("ok", Action.NOOP),
                _change("new", Action.CREATE, planned={"priority": 1}),
            ],
        )
        result = format_plan(plan, color=False)
        assert "lattice_listener_rule.ok" not in result
        assert "lattice_listener_rule.new" in result

    def test_changes_separated_by_blank_line(self) -> None:
        result = format_changes(
            [_change("a", Action.DELETE), _change("b", Action.DELETE)], color=False
        )
        assert "}\n\n  # lattice_listener_rule.b" in result


class TestHasActionableChanges:
    def test_all_noop(self) -> None:
        plan = Plan(metadata=_META, changes=[_change("ok", Action.NOOP)])
        assert has_actionable_changes(plan) is False

    def test_with_replace(self) -> None:
        plan = Plan(metadata=_META, changes=[_change("api", Action.REPLACE)])
        assert has_actionable_changes(plan) is True

    def test_empty_plan(self) -> None:
        plan = Plan(metadata=_META, changes=[])
        assert has_actionable_changes(plan) is False
