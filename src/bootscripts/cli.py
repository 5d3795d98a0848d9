# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Main CLI entry point for bootscripts.

Thin trigger: loads config, runs the common and module batches for a
phase through one runner, reports what was dispatched.
"""

import logging
from typing import List, Optional

import typer

from bootscripts import __version__
from bootscripts.config import ConfigError, load_config
from bootscripts.engine import (
    DeadlineState,
    PhaseNameError,
    PhaseRunner,
    run_common_scripts,
    run_module_scripts,
)


app = typer.Typer(
    name="bootscripts",
    help="Run boot phase scripts with a deadline on the governed phase",
    no_args_is_help=True,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def run(
    phase: str = typer.Argument(..., help="Phase name, e.g. post-fs-data or service"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
    modules: Optional[List[str]] = typer.Option(
        None, "--module", "-m", help="Module to run, repeatable (overrides config)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Run the <phase>.d scripts, then each module's <phase>.sh."""
    _configure_logging(verbose)

    try:
        config = load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        typer.echo(f"Config error: {e}", err=True)
        raise typer.Exit(1)

    # Both batches of one phase share a single deadline
    runner = PhaseRunner.from_config(config, DeadlineState())
    module_names = modules if modules else config.modules

    try:
        reports = [
            run_common_scripts(runner, phase, config.secure_dir),
            run_module_scripts(runner, phase, config.module_root, module_names),
        ]
    except PhaseNameError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    for report in reports:
        status = " (timed out)" if report.timed_out else ""
        typer.echo(
            f"{report.phase}: {len(report.dispatched)} dispatched, "
            f"{len(report.awaited)} awaited, {len(report.skipped)} skipped, "
            f"{len(report.failed)} failed [{report.state.value}]{status}"
        )


@app.command()
def version():
    """Show version information."""
    typer.echo(f"bootscripts version {__version__}")


# Static commands (config, script)
from bootscripts.commands import config, script

app.add_typer(config.app, name="config")
app.add_typer(script.app, name="script")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
