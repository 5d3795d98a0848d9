# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Config command for bootscripts.

Validates the runner configuration and shows the effective settings.
"""

import typer

from bootscripts.config import ConfigError, load_config

app = typer.Typer(help="Manage and validate configuration")


@app.command()
def validate(
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """
    Validate configuration file.

    Checks that the config file exists, is valid YAML and has sane values.
    Without --config, the default search paths are used.
    """
    typer.echo("Validating configuration...")
    typer.echo()

    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except ConfigError as e:
        typer.echo(f"Validation failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("Configuration is valid")
    typer.echo()
    typer.echo(f"Governed phase: {config.governed_phase} (max {config.max_duration:g}s)")
    typer.echo(f"Script root: {config.secure_dir}")
    typer.echo(f"Module root: {config.module_root}")
    typer.echo(f"Shell: {' '.join(config.shell_command())}")
    if config.modules:
        typer.echo(f"Modules: {', '.join(config.modules)}")
    if config.events_log:
        typer.echo(f"Events log: {config.events_log}")
