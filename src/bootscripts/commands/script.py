"""
Script command for bootscripts.

Inspects phase script directories and runs single scripts by hand.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from pathlib import Path
from typing import Optional

import typer

from bootscripts.config import ConfigError, load_config
from bootscripts.engine import (
    DirectorySource,
    ModuleSource,
    PhaseNameError,
    ShellSpawner,
    SourceUnavailable,
)

app = typer.Typer(help="Inspect and run individual boot scripts")


def _load(config_path: Optional[str]):
    try:
        return load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        typer.echo(f"Config error: {e}", err=True)
        raise typer.Exit(1)


@app.command("list")
def list_command(
    phase: str = typer.Argument(..., help="Phase name"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """List the scripts a phase would run, in run order.

    Examples:
        bootscripts script list post-fs-data
        bootscripts script list service --config ./boot.yaml
    """
    config = _load(config_path)
    common = DirectorySource(Path(config.secure_dir))
    modules = ModuleSource(Path(config.module_root), config.modules)

    try:
        try:
            common_scripts = common.list(phase)
        except SourceUnavailable:
            common_scripts = []
        module_scripts = modules.list(phase)
    except PhaseNameError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if not common_scripts and not module_scripts:
        typer.echo(f"No scripts found for phase {phase}.")
        return

    governed = " [GOVERNED]" if phase == config.governed_phase else ""
    typer.echo(f"Scripts for {phase}{governed}:\n")
    for source, descriptors in ((common, common_scripts), (modules, module_scripts)):
        for descriptor in descriptors:
            badge = "" if source.eligible(descriptor) else " [SKIPPED]"
            typer.echo(f"  {descriptor.name}{badge}")
            typer.echo(f"    {descriptor.path}")


@app.command("exec")
def exec_command(
    path: Path = typer.Argument(..., help="Script to run"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Run one script through the configured shell and wait for it.

    Exits with the script's status.

    Examples:
        bootscripts script exec /data/adb/service.d/fix-perms.sh
    """
    config = _load(config_path)
    if not path.is_file():
        typer.echo(f"Error: script not found: {path}", err=True)
        raise typer.Exit(1)

    exit_code = ShellSpawner.from_config(config).exec_script(path)
    if exit_code is None:
        typer.echo(f"Error: could not start {path}", err=True)
        raise typer.Exit(1)
    raise typer.Exit(exit_code)
