"""Typer application behind the ``lattice-provisioner`` command."""

from __future__ import annotations

import logging
import os
import sys

import typer

from lattice_provisioner import __version__

app = typer.Typer(
    name="lattice-provisioner",
    no_args_is_help=True,
    add_completion=False,
)

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VERBOSITY_LEVELS = {1: logging.INFO, 2: logging.DEBUG}


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"lattice-provisioner {__version__}")
        raise typer.Exit


def _requested_level(verbose: int) -> int | None:
    """``LATTICE_LOG`` beats ``-v``; None means leave logging alone."""
    name = os.environ.get("LATTICE_LOG", "").upper()
    if not name:
        return _VERBOSITY_LEVELS.get(min(verbose, 2))
    if name not in _VALID_LEVELS:
        print(
            f"WARNING: invalid LATTICE_LOG level '{name}', "
            f"expected one of {', '.join(sorted(_VALID_LEVELS))}; defaulting to INFO",
            file=sys.stderr,
        )
        return logging.INFO
    return logging.getLevelName(name)


def _configure_logging(verbose: int) -> None:
    """Send package logs to stderr; other libraries (botocore) stay at WARNING."""
    level = _requested_level(verbose)
    if level is None:
        return
    logging.basicConfig(
        level=logging.WARNING,
        format=_LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("lattice_provisioner").setLevel(level)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Log engine activity to stderr (-v info, -vv debug).",
    ),
) -> None:
    """Terraform-style provisioning for VPC Lattice listener rules."""
    _ = version
    _configure_logging(verbose)


# Commands import ``app`` from this module, so they register last.
from lattice_provisioner.cli import commands as _commands  # noqa: E402, F401
