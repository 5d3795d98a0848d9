"""Configuration loading and validation.

Reads the boot script runner settings from a YAML file.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


DEFAULT_GOVERNED_PHASE = "post-fs-data"
DEFAULT_MAX_DURATION = 35.0
BUSYBOX_SUBPATH = ".magisk/busybox/busybox"

KNOWN_KEYS = {
    "governed_phase",
    "max_duration",
    "secure_dir",
    "module_root",
    "tmp_dir",
    "shell",
    "zygisk_enabled",
    "modules",
    "events_log",
}


@dataclass
class BootConfig:
    """Boot script runner settings.

    Fields:
    - governed_phase: The one phase with a blocking deadline
    - max_duration: Seconds the governed phase may block its caller
    - secure_dir: Holds the <phase>.d script directories
    - module_root: Holds one directory per module
    - tmp_dir: Runtime directory appended to PATH; busybox lives below it
    - shell: Interpreter command; defaults to busybox sh under tmp_dir
    - zygisk_enabled: Exported to scripts as ZYGISK_ENABLED=1
    - modules: Enabled module names, in load order
    - events_log: Optional JSONL event file
    """

    governed_phase: str = DEFAULT_GOVERNED_PHASE
    max_duration: float = DEFAULT_MAX_DURATION
    secure_dir: str = "/data/adb"
    module_root: str = "/data/adb/modules"
    tmp_dir: str = "/debug_ramdisk"
    shell: Optional[List[str]] = None
    zygisk_enabled: bool = False
    modules: List[str] = field(default_factory=list)
    events_log: Optional[str] = None

    def validate(self) -> None:
        """Validate config fields.

        Raises:
            ConfigError: If validation fails.
        """
        for name in ("governed_phase", "secure_dir", "module_root", "tmp_dir"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"{name} must be a non-empty string")

        if isinstance(self.max_duration, bool) or not isinstance(
            self.max_duration, (int, float)
        ):
            raise ConfigError(f"max_duration must be a number, got: {self.max_duration!r}")
        if self.max_duration <= 0:
            raise ConfigError(f"max_duration must be positive, got: {self.max_duration}")

        if self.shell is not None:
            if not isinstance(self.shell, list) or not self.shell:
                raise ConfigError("shell must be a non-empty list of strings")
            if not all(isinstance(part, str) and part for part in self.shell):
                raise ConfigError("shell must be a non-empty list of strings")

        if not isinstance(self.zygisk_enabled, bool):
            raise ConfigError(f"zygisk_enabled must be true or false, got: {self.zygisk_enabled!r}")

        if not isinstance(self.modules, list) or not all(
            isinstance(m, str) and m for m in self.modules
        ):
            raise ConfigError("modules must be a list of module names")
        for module in self.modules:
            if ".." in module or "/" in module or "\\" in module:
                raise ConfigError(f"invalid module name (must be a single path component): {module}")

    def shell_command(self) -> List[str]:
        """Interpreter command every script is handed to."""
        if self.shell:
            return list(self.shell)
        return [str(Path(self.tmp_dir) / BUSYBOX_SUBPATH), "sh"]


def get_config_paths() -> List[Path]:
    """Get config file locations in priority order.

    Order:
    1. $BOOTSCRIPTS_CONFIG (if set)
    2. ~/.bootscripts/config.yaml
    """
    paths = []

    env_path = os.environ.get("BOOTSCRIPTS_CONFIG")
    if env_path:
        paths.append(Path(env_path))

    paths.append(Path("~/.bootscripts/config.yaml").expanduser())

    return paths


def load_config(path: Optional[str] = None) -> BootConfig:
    """Load configuration from a YAML file.

    An explicit path must exist. Without one, the first existing file
    from get_config_paths() is used, falling back to built-in defaults.

    Args:
        path: Optional explicit config file path.

    Returns:
        Validated BootConfig.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigError: If the file is not valid YAML or fails validation.
    """
    if path:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"config file not found: {config_path}")
    else:
        config_path = next((p for p in get_config_paths() if p.exists()), None)
        if config_path is None:
            config = BootConfig()
            config.validate()
            return config

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {config_path}: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {config_path} must contain a YAML mapping")

    unknown = sorted(set(data) - KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"unknown config keys in {config_path}: {', '.join(unknown)}")

    try:
        config = BootConfig(**data)
    except TypeError as e:
        raise ConfigError(f"invalid config in {config_path}: {e}")

    config.validate()
    return config
