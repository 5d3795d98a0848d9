"""
Process spawner for boot scripts.

Hands every script to a fixed shell with a prepared environment,
either waiting for it or letting it run on its own.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import os
import subprocess
import threading
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from bootscripts.config import BootConfig
from bootscripts.engine.sources import ScriptDescriptor


class ExecutionMode(Enum):
    """How a dispatched script is treated by the caller."""

    BLOCKING = "blocking"
    FIRE_AND_FORGET = "fire_and_forget"


class ShellSpawner:
    """Starts scripts through a shell, one process per script."""

    def __init__(
        self,
        shell: Sequence[str],
        path_extra: Optional[str] = None,
        extra_env: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the spawner.

        Args:
            shell: Interpreter command; the script path is appended to it
            path_extra: Directory appended to PATH for every script
            extra_env: Additional variables exported to every script
        """
        if not shell:
            raise ValueError("shell command cannot be empty")
        self.shell = list(shell)
        self.path_extra = path_extra
        self.extra_env = dict(extra_env or {})
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: BootConfig) -> "ShellSpawner":
        extra_env = {"ZYGISK_ENABLED": "1"} if config.zygisk_enabled else {}
        return cls(config.shell_command(), path_extra=config.tmp_dir, extra_env=extra_env)

    def prepare_env(self) -> Dict[str, str]:
        """
        Build the environment handed to each script.

        Rebuilt before every spawn so changes to os.environ are picked up.
        """
        env = os.environ.copy()
        env["ASH_STANDALONE"] = "1"
        if self.path_extra:
            current = env.get("PATH", "")
            env["PATH"] = f"{current}:{self.path_extra}" if current else self.path_extra
        env.update(self.extra_env)
        return env

    def command_for(self, path: Path) -> List[str]:
        return [*self.shell, str(path)]

    def spawn(self, descriptor: ScriptDescriptor) -> Optional[subprocess.Popen]:
        """
        Start a script without waiting for it.

        Returns:
            The child process, or None if it could not be created
        """
        command = self.command_for(descriptor.path)
        try:
            return subprocess.Popen(
                command,
                env=self.prepare_env(),
                stdin=subprocess.DEVNULL,
                close_fds=True,
            )
        except OSError as e:
            self.logger.warning(f"Failed to spawn [{descriptor.name}] ({' '.join(command)}): {e}")
            return None

    def release(self, proc: subprocess.Popen) -> None:
        """
        Stop caring about a child without leaving a zombie behind.

        A daemon thread waits on the child so its exit status is collected
        as soon as it finishes. The child itself is never signalled.
        """
        reaper = threading.Thread(
            target=proc.wait, name=f"reap-{proc.pid}", daemon=True
        )
        try:
            reaper.start()
        except RuntimeError as e:
            self.logger.warning(f"Could not start reaper for pid {proc.pid}: {e}")

    def run(self, descriptor: ScriptDescriptor, mode: ExecutionMode) -> Optional[int]:
        """
        Dispatch a script in the given mode.

        Args:
            descriptor: Script to run
            mode: BLOCKING waits for exit, FIRE_AND_FORGET returns at once

        Returns:
            Exit status for blocking runs, None otherwise or on spawn failure
        """
        proc = self.spawn(descriptor)
        if proc is None:
            return None
        if mode is ExecutionMode.FIRE_AND_FORGET:
            self.release(proc)
            return None

        returncode = proc.wait()
        self.logger.debug(f"[{descriptor.name}] exited with status {returncode}")
        return returncode

    def exec_script(self, path: Path) -> Optional[int]:
        """Run a single script to completion and return its exit status."""
        path = Path(path)
        return self.run(ScriptDescriptor(name=path.name, path=path), ExecutionMode.BLOCKING)
