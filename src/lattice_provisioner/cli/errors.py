"""Map exceptions to clean stderr messages and exit codes."""

from __future__ import annotations

import typer


def _err(msg: str, *, fg: str | None) -> None:
    typer.echo(typer.style(msg, fg=fg), err=True)


def _prefixes() -> list[tuple[type[BaseException] | tuple[type[BaseException], ...], str]]:
    """Exception types with a plain one-line rendering, checked in order."""
    from botocore.exceptions import BotoCoreError, ClientError

    from lattice_provisioner.config.loader import ConfigError
    from lattice_provisioner.engine.errors import (
        ResourceImportError,
        StalePlanError,
        StateLockError,
        StateWorkspaceMismatchError,
    )
    from lattice_provisioner.engine.waiters import WaitError

    return [
        (ConfigError, "Configuration error"),
        (StalePlanError, "Plan is stale"),
        (StateWorkspaceMismatchError, "State mismatch"),
        (StateLockError, "State is locked"),
        (ResourceImportError, "Import failed"),
        (WaitError, "Wait failed"),
        ((ClientError, BotoCoreError), "AWS error"),
    ]


def _partial_result(exc: Exception) -> str | None:
    s = exc.result.summary()  # type: ignore[attr-defined]
    counts = (
        (s["create"], "added"),
        (s["update"], "changed"),
        (s["replace"], "replaced"),
        (s["delete"], "destroyed"),
    )
    parts = [f"{n} {verb}" for n, verb in counts if n]
    return f"  Partial result: {', '.join(parts)}." if parts else None


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return the exit code (always 1).

    No tracebacks are printed; run with ``-vv`` to see the engine's log lines.
    """
    from lattice_provisioner.engine.errors import ApplyCanceled, ApplyError, ValidationError

    fg = typer.colors.RED if color else None

    if isinstance(exc, ValidationError):
        _err("Validation failed:", fg=fg)
        for e in exc.errors:
            _err(f"  - {e}", fg=fg)
        return 1
    if isinstance(exc, ApplyError):
        _err(f"Apply failed: {exc}", fg=fg)
        if (partial := _partial_result(exc)) is not None:
            _err(partial, fg=fg)
        return 1
    if isinstance(exc, ApplyCanceled):
        _err("Apply canceled.", fg=fg)
        return 1

    prefix = next((p for types, p in _prefixes() if isinstance(exc, types)), "Error")
    _err(f"{prefix}: {exc}", fg=fg)
    return 1
