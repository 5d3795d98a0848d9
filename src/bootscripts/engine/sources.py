"""Script sources for boot phases.

A source turns a phase name into an ordered list of script descriptors
and decides which of them may be run.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Protocol, Type

logger = logging.getLogger(__name__)

class SourceUnavailable(Exception):
    """Raised when a script source does not exist at all."""

    pass


class PhaseNameError(ValueError):
    """Raised when a phase name cannot be used as a path component."""

    pass


class ModuleNameError(ValueError):
    """Raised when a module name cannot be used as a path component."""

    pass


@dataclass(frozen=True)
class ScriptDescriptor:
    """One runnable script: what to call it in logs and where it lives."""

    name: str
    path: Path


class ScriptSource(Protocol):
    def list(self, phase: str) -> List[ScriptDescriptor]:
        ...

    def eligible(self, descriptor: ScriptDescriptor) -> bool:
        ...

    def describe(self, phase: str) -> str:
        ...

    def exec_label(self, phase: str, descriptor: ScriptDescriptor) -> str:
        ...


def _check_component(value: str, kind: str, error: Type[ValueError]) -> None:
    if not value:
        raise error(f"{kind} name cannot be empty")
    if ".." in value:
        raise error(f"path traversal not allowed in {kind} name: {value}")
    if "/" in value or "\\" in value:
        raise error(f"path separators not allowed in {kind} name: {value}")


def validate_phase(phase: str) -> None:
    """Validate a phase name.

    Phase names become directory and file names, so they must be:
    - Non-empty
    - Free of path separators (/, \\)
    - Free of ".." traversal

    Raises:
        PhaseNameError: If the name is invalid.
    """
    _check_component(phase, "phase", PhaseNameError)


def validate_module(module: str) -> None:
    """Validate a module name; same rules as validate_phase().

    Raises:
        ModuleNameError: If the name is invalid.
    """
    _check_component(module, "module", ModuleNameError)


class DirectorySource:
    """Scripts dropped into <root>/<phase>.d/, run in directory order."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def phase_dir(self, phase: str) -> Path:
        validate_phase(phase)
        return self.root / f"{phase}.d"

    def list(self, phase: str) -> List[ScriptDescriptor]:
        phase_dir = self.phase_dir(phase)
        try:
            with os.scandir(phase_dir) as entries:
                return [
                    ScriptDescriptor(name=entry.name, path=Path(entry.path))
                    for entry in entries
                ]
        except (FileNotFoundError, NotADirectoryError):
            raise SourceUnavailable(f"script directory not found: {phase_dir}")

    def eligible(self, descriptor: ScriptDescriptor) -> bool:
        # Regular files only, and the execute bit is the opt-in switch
        path = descriptor.path
        return path.is_file() and not path.is_symlink() and os.access(path, os.X_OK)

    def describe(self, phase: str) -> str:
        return f"{phase}.d"

    def exec_label(self, phase: str, descriptor: ScriptDescriptor) -> str:
        return f"{phase}.d: exec [{descriptor.name}]"


class ModuleSource:
    """At most one <module_root>/<module>/<phase>.sh per module, in module order."""

    def __init__(self, module_root: Path, modules: Iterable[str]):
        self.module_root = Path(module_root)
        self.modules = list(modules)

    def script_path(self, module: str, phase: str) -> Path:
        validate_phase(phase)
        validate_module(module)
        return self.module_root / module / f"{phase}.sh"

    def list(self, phase: str) -> List[ScriptDescriptor]:
        validate_phase(phase)
        descriptors = []
        for module in self.modules:
            try:
                path = self.script_path(module, phase)
            except ModuleNameError as e:
                logger.warning(f"Ignoring module: {e}")
                continue
            if path.exists():
                descriptors.append(ScriptDescriptor(name=module, path=path))
        return descriptors

    def eligible(self, descriptor: ScriptDescriptor) -> bool:
        # Module scripts are passed to the shell, so no execute bit is needed
        return descriptor.path.is_file()

    def describe(self, phase: str) -> str:
        return f"module {phase}"

    def exec_label(self, phase: str, descriptor: ScriptDescriptor) -> str:
        return f"{descriptor.name}: exec [{phase}.sh]"


class StaticSource:
    """A pre-built ordered list of scripts, used for every phase."""

    def __init__(self, descriptors: Iterable[ScriptDescriptor]):
        self.descriptors = list(descriptors)

    def list(self, phase: str) -> List[ScriptDescriptor]:
        return list(self.descriptors)

    def eligible(self, descriptor: ScriptDescriptor) -> bool:
        return descriptor.path.is_file()

    def describe(self, phase: str) -> str:
        return phase

    def exec_label(self, phase: str, descriptor: ScriptDescriptor) -> str:
        return f"{phase}: exec [{descriptor.name}]"
