"""CLI command implementations."""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Literal

import typer

from lattice_provisioner.cli import app
from lattice_provisioner.cli.errors import handle_error

if TYPE_CHECKING:
    from collections.abc import Iterator

    from lattice_provisioner.config.schema import Config
    from lattice_provisioner.engine.types import ApplyResult, Plan

DEFAULT_CONFIG = Path("lattice-provisioner.yaml")

ConfigPath = Annotated[
    Path,
    typer.Option("--config", "-c", help="YAML file declaring provider and listener_rules."),
]
NoColor = Annotated[bool, typer.Option("--no-color", help="Disable colored output.")]
AutoApprove = Annotated[bool, typer.Option("--auto-approve", help="Skip interactive approval.")]
NoRefresh = Annotated[
    bool,
    typer.Option("--no-refresh", help="Plan against the state file without reading VPC Lattice."),
]


def _use_color(no_color: bool) -> bool:
    return not no_color and not os.environ.get("NO_COLOR")


@contextmanager
def _exit_on_error(color: bool) -> Iterator[None]:
    """Turn any failure inside the block into a one-line message and exit 1."""
    try:
        yield
    except typer.Exit:
        raise
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc


def _confirm(question: str, canceled_msg: str) -> None:
    try:
        typer.confirm(question, abort=True)
    except typer.Abort as e:
        typer.echo(canceled_msg, err=True)
        raise typer.Exit(1) from e


def _apply_with_progress(plan_obj: Plan, cfg: Config, *, color: bool) -> ApplyResult:
    """Run the apply behind a Rich progress bar, echoing each finished rule."""
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from lattice_provisioner.cli.formatting import _ACTION_STYLES
    from lattice_provisioner.config import apply
    from lattice_provisioner.engine.types import Action, ResourceChange

    pending = sum(1 for c in plan_obj.changes if c.action != Action.NOOP)
    columns = (
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
    )
    with Progress(*columns, console=Console(no_color=not color)) as progress:
        task = progress.add_task("Applying", total=pending)

        def report(change: ResourceChange, event: Literal["start", "done"]) -> None:
            style = _ACTION_STYLES[change.action.value]
            if event == "start":
                progress.update(task, description=f"{change.address}: {style.progress_verb}...")
                return
            progress.console.print(f"  {change.address}: {style.done_verb}")
            progress.advance(task)

        return apply(plan_obj, cfg, progress=report)


def _show_plan_and_apply(
    plan_obj: Plan,
    cfg: Config,
    *,
    color: bool,
    auto_approve: bool,
    question: str,
    nothing_to_do: str,
) -> None:
    """Print the plan, ask for approval, apply, then print the summary."""
    from lattice_provisioner.cli.formatting import (
        format_apply_summary,
        format_plan,
        format_plan_summary,
        has_actionable_changes,
    )

    if not has_actionable_changes(plan_obj):
        typer.echo(nothing_to_do)
        raise typer.Exit(0)

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))
    typer.echo()

    if not auto_approve:
        _confirm(question, "Apply canceled.")

    with _exit_on_error(color):
        result = _apply_with_progress(plan_obj, cfg, color=color)

    typer.echo()
    typer.echo(format_apply_summary(result.summary(), color=color))


@app.command()
def plan(
    config: ConfigPath = DEFAULT_CONFIG,
    out: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Write the plan to this file for a later apply."),
    ] = None,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
) -> None:
    """Show the listener rule changes the configuration requires.

    Exits 0 when nothing changes and 2 when the plan has changes.
    """
    from lattice_provisioner import config as api
    from lattice_provisioner.cli.formatting import (
        format_plan,
        format_plan_summary,
        has_actionable_changes,
    )

    color = _use_color(no_color)
    with _exit_on_error(color):
        plan_obj = api.plan(api.load(config), refresh=not no_refresh)

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))

    if out is not None:
        plan_obj.save(out)
        typer.echo(f"\nPlan saved to {out}")

    if has_actionable_changes(plan_obj):
        raise typer.Exit(2)


@app.command(name="apply")
def apply_cmd(
    plan_file: Annotated[
        Path | None,
        typer.Argument(help="Plan written by 'plan --out'; planned fresh when omitted."),
    ] = None,
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
) -> None:
    """Create, update, replace or delete listener rules to match the configuration."""
    from lattice_provisioner import config as api
    from lattice_provisioner.engine.types import Plan

    color = _use_color(no_color)
    with _exit_on_error(color):
        cfg = api.load(config)
        if plan_file is not None:
            plan_obj = Plan.load(plan_file)
        else:
            plan_obj = api.plan(cfg, refresh=not no_refresh)

    _show_plan_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        question="Do you want to apply these changes?",
        nothing_to_do="No changes. Listener rules are up-to-date.",
    )


@app.command()
def destroy(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Delete every listener rule tracked in the state file."""
    from lattice_provisioner import config as api

    color = _use_color(no_color)
    with _exit_on_error(color):
        cfg = api.load(config)
        plan_obj = api.plan(cfg, destroy=True)

    _show_plan_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        question="Do you really want to delete all managed listener rules?",
        nothing_to_do="No resources to destroy.",
    )


@app.command(name="refresh")
def refresh_cmd(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Re-read tracked rules from VPC Lattice and update the state file."""
    from lattice_provisioner import config as api
    from lattice_provisioner.cli.formatting import (
        changes_summary,
        format_changes,
        format_plan_summary,
    )

    color = _use_color(no_color)
    with _exit_on_error(color):
        cfg = api.load(config)
        changes, state = api.refresh(cfg)

    if not changes:
        typer.echo("No changes. State is up-to-date with VPC Lattice.")
        raise typer.Exit(0)

    typer.echo(format_changes(changes, color=color))
    typer.echo()
    typer.echo(format_plan_summary(changes_summary(changes), color=color, header="Refresh"))
    typer.echo()

    if not auto_approve:
        _confirm("Do you want to update the state file?", "Refresh canceled.")

    with _exit_on_error(color):
        api.save_state(cfg, state)

    count = len(state.resources)
    typer.echo(f"State refreshed. {count} resource{'' if count == 1 else 's'} tracked.")


@app.command()
def drift(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Report rules changed or deleted outside this tool. The state file is left alone."""
    from lattice_provisioner import config as api
    from lattice_provisioner.cli.formatting import format_changes

    color = _use_color(no_color)
    with _exit_on_error(color):
        changes = api.drift(api.load(config))

    if not changes:
        typer.echo("No drift detected. State is up-to-date with VPC Lattice.")
        raise typer.Exit(0)

    typer.echo("Drift detected:\n")
    typer.echo(format_changes(changes, color=color))


@app.command()
def validate(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Check the configuration offline, without calling VPC Lattice."""
    from lattice_provisioner import config as api
    from lattice_provisioner.cli.formatting import styler

    color = _use_color(no_color)
    with _exit_on_error(color):
        api.plan(api.load(config), refresh=False)

    typer.echo(styler(color)("Configuration is valid.", fg="green"))


@app.command(name="import")
def import_cmd(
    import_id: Annotated[
        str,
        typer.Argument(help="Rule to import, as SERVICE/LISTENER/RULE_ID."),
    ],
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Bring an existing listener rule under management."""
    from lattice_provisioner import config as api
    from lattice_provisioner.cli.formatting import styler

    color = _use_color(no_color)
    with _exit_on_error(color):
        inst = api.import_resource(api.load(config), import_id)

    typer.echo(styler(color)(f"Imported {import_id} as {inst.address}.", fg="green"))
    typer.echo("Add a matching entry under listener_rules to keep managing it.")
