"""Deadline-governed script execution engine.

Runs ordered script batches for host lifecycle phases. One phase is
governed: its scripts block the caller until they finish or a shared
deadline passes, after which everything left runs in the background.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from bootscripts.engine.sources import (
    DirectorySource,
    ModuleNameError,
    ModuleSource,
    PhaseNameError,
    ScriptDescriptor,
    ScriptSource,
    SourceUnavailable,
    StaticSource,
    validate_module,
    validate_phase,
)
from bootscripts.engine.deadline import (
    DeadlineState,
    OverlappingPhaseError,
    RunState,
)
from bootscripts.engine.watchdog import Watchdog
from bootscripts.engine.spawner import ExecutionMode, ShellSpawner
from bootscripts.engine.runner import (
    PhaseReport,
    PhaseRunner,
    run_common_scripts,
    run_module_scripts,
)

__all__ = [
    "ScriptDescriptor",
    "ScriptSource",
    "DirectorySource",
    "ModuleSource",
    "StaticSource",
    "SourceUnavailable",
    "PhaseNameError",
    "ModuleNameError",
    "validate_phase",
    "validate_module",
    "DeadlineState",
    "RunState",
    "OverlappingPhaseError",
    "Watchdog",
    "ExecutionMode",
    "ShellSpawner",
    "PhaseRunner",
    "PhaseReport",
    "run_common_scripts",
    "run_module_scripts",
]
