"""Plan and apply output rendering (Terraform-style)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import typer

from lattice_provisioner.engine.types import Action

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from lattice_provisioner.engine.types import Plan, ResourceChange


class _ActionStyle(NamedTuple):
    color: str
    symbol: str
    progress_verb: str
    done_verb: str
    description: str


_ACTION_STYLES: dict[str, _ActionStyle] = {
    "create": _ActionStyle("green", "+", "Creating", "Creation complete", "will be created"),
    "update": _ActionStyle(
        "yellow", "~", "Updating", "Update complete", "will be updated in-place"
    ),
    "replace": _ActionStyle(
        "magenta", "-/+", "Replacing", "Replacement complete", "must be replaced"
    ),
    "delete": _ActionStyle("red", "-", "Destroying", "Destroy complete", "will be destroyed"),
    "no-op": _ActionStyle("bright_black", " ", "", "", "is up-to-date"),
}


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    return typer.style if color else (lambda text, **_kw: text)


def has_actionable_changes(plan: Plan) -> bool:
    """Return True if the plan contains any non-NOOP changes."""
    return any(c.action != Action.NOOP for c in plan.changes)


# ---------------------------------------------------------------------------
# Change blocks
# ---------------------------------------------------------------------------


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, str):
        return f'"{value}"'
    return str(value)


def _attribute_lines(change: ResourceChange) -> list[tuple[str, str]]:
    """``(key, rendered value)`` pairs shown inside a change block."""
    if change.action == Action.CREATE:
        return [(k, _format_value(v)) for k, v in (change.planned or {}).items()]
    if change.action not in (Action.UPDATE, Action.REPLACE):
        return []
    forcing = set(change.replace_paths or ())
    lines = []
    for key, d in (change.diff or {}).items():
        rendered = f"{_format_value(d['from'])} -> {_format_value(d['to'])}"
        if key in forcing:
            rendered += " # forces replacement"
        lines.append((key, rendered))
    return lines


def format_change(change: ResourceChange, *, color: bool = True) -> str:
    """Render a single ResourceChange as a Terraform-style block."""
    s = _ACTION_STYLES[change.action.value]
    paint = styler(color)

    def line(text: str, **kw: Any) -> str:
        return paint(text, fg=s.color, **kw)

    # Inside a replace block the individual attributes are changes, not recreations.
    attr_symbol = "~" if change.action == Action.REPLACE else s.symbol
    _, _, name = change.address.partition(".")
    attrs = _attribute_lines(change)
    width = max((len(k) for k, _ in attrs), default=0)

    out = [
        line(f"  # {change.address} {s.description}", bold=True),
        line(f'  {s.symbol} resource "{change.resource_type}" "{name or change.address}" {{'),
    ]
    out.extend(line(f"      {attr_symbol} {k.ljust(width)} = {v}") for k, v in attrs)
    out.append(line("    }"))
    return "\n".join(out)


def format_changes(changes: Iterable[ResourceChange], *, color: bool = True) -> str:
    """Render changes as diff blocks separated by blank lines, skipping no-ops."""
    blocks = [format_change(c, color=color) for c in changes if c.action != Action.NOOP]
    return "\n\n".join(blocks) if blocks else "No changes. Resources are up-to-date."


def format_plan(plan: Plan, *, color: bool = True) -> str:
    return format_changes(plan.changes, color=color)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

_SUMMARY_COLUMNS = (
    ("green", "to add", "added"),
    ("yellow", "to change", "changed"),
    ("red", "to destroy", "destroyed"),
)


def _summary_counts(summary: dict[str, int]) -> tuple[int, int, int]:
    """(added, changed, destroyed); a replacement is both added and destroyed."""
    replaced = summary.get("replace", 0)
    return (
        summary.get("create", 0) + replaced,
        summary.get("update", 0),
        summary.get("delete", 0) + replaced,
    )


def _format_summary(summary: dict[str, int], *, past: bool, color: bool) -> str:
    paint = styler(color)
    parts = []
    for n, (fg, future_verb, past_verb) in zip(
        _summary_counts(summary), _SUMMARY_COLUMNS, strict=True
    ):
        text = f"{n} {past_verb if past else future_verb}"
        parts.append(paint(text, fg=fg) if n else text)
    return ", ".join(parts)


def changes_summary(changes: Iterable[ResourceChange]) -> dict[str, int]:
    """Count changes by action type, skipping no-ops."""
    summary = {"create": 0, "update": 0, "replace": 0, "delete": 0}
    for c in changes:
        if c.action != Action.NOOP:
            summary[c.action.value] += 1
    return summary


def format_plan_summary(
    summary: dict[str, int], *, color: bool = True, header: str = "Plan"
) -> str:
    """Render ``Plan: 2 to add, 1 to change, 0 to destroy.``"""
    return f"{header}: {_format_summary(summary, past=False, color=color)}."


def format_apply_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Apply complete! Resources: 2 added, 0 changed, 0 destroyed.``"""
    header = styler(color)("Apply complete!", fg="green", bold=True)
    return f"{header} Resources: {_format_summary(summary, past=True, color=color)}."
