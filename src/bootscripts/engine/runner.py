"""Phase runner with deadline enforcement and event emission.

Runs every script a source yields for a phase, in order. The governed
phase blocks its caller until its scripts finish or its deadline passes;
every other phase starts its scripts and returns at once.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import subprocess
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from bootscripts.config import BootConfig, DEFAULT_GOVERNED_PHASE, DEFAULT_MAX_DURATION
from bootscripts.event_client import EventClient, open_event_client
from bootscripts.engine.deadline import DeadlineState, RunState
from bootscripts.engine.sources import (
    DirectorySource,
    ModuleSource,
    ScriptDescriptor,
    ScriptSource,
    SourceUnavailable,
)
from bootscripts.engine.spawner import ExecutionMode, ShellSpawner
from bootscripts.engine.watchdog import Watchdog

logger = logging.getLogger(__name__)


@dataclass
class PhaseReport:
    """What one run() call did. Observational only.

    - dispatched: Scripts started, in order
    - awaited: Scripts that exited before the deadline
    - skipped: Scripts the source reported as not eligible
    - failed: Scripts whose process could not be created
    """

    phase: str
    state: RunState = RunState.UNGOVERNED
    dispatched: List[str] = field(default_factory=list)
    awaited: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    timed_out: bool = False
    watchdog_started: bool = False


@dataclass
class _Invocation:
    phase: str
    source: ScriptSource
    correlation_id: str
    report: PhaseReport


class PhaseRunner:
    """Dispatches phase script batches and enforces the governed phase deadline."""

    def __init__(
        self,
        spawner: ShellSpawner,
        deadline_state: DeadlineState,
        governed_phase: str = DEFAULT_GOVERNED_PHASE,
        max_duration: float = DEFAULT_MAX_DURATION,
        events: Optional[EventClient] = None,
        watchdog_factory: Callable[[float, Callable[[], float]], Watchdog] = Watchdog,
    ):
        self.spawner = spawner
        self.deadline_state = deadline_state
        self.governed_phase = governed_phase
        self.max_duration = max_duration
        self.events = events
        self.watchdog_factory = watchdog_factory

    @classmethod
    def from_config(cls, config: BootConfig, deadline_state: DeadlineState) -> "PhaseRunner":
        """Build a runner whose spawner and event sink follow the config."""
        return cls(
            spawner=ShellSpawner.from_config(config),
            deadline_state=deadline_state,
            governed_phase=config.governed_phase,
            max_duration=config.max_duration,
            events=open_event_client(config.events_log),
        )

    def run(self, phase: str, source: ScriptSource) -> PhaseReport:
        """Run every script the source yields for a phase.

        Returns once every script has been started and, for a governed
        phase that has not timed out, every started script has exited or
        the deadline has passed. Script failures never raise.

        Raises:
            PhaseNameError: If the phase name is not usable by the source.
            OverlappingPhaseError: If another governed run is still active.
        """
        inv = _Invocation(
            phase=phase,
            source=source,
            correlation_id=str(uuid.uuid4()),
            report=PhaseReport(phase=phase),
        )

        logger.info(f"* Running {source.describe(phase)} scripts")
        self._emit(inv, "phase.started", "running")

        try:
            descriptors = source.list(phase)
        except SourceUnavailable as e:
            logger.debug(f"{phase}: {e}")
            inv.report.state = self.resting_state(phase)
            self._emit(inv, "phase.completed", "unavailable")
            return inv.report

        if phase == self.governed_phase:
            with self.deadline_state.claim():
                self._run_governed(inv, descriptors)
        else:
            self._dispatch_background(inv, descriptors)

        self._emit(
            inv,
            "phase.completed",
            "timed_out" if inv.report.timed_out else "succeeded",
            payload={
                "state": inv.report.state.value,
                "dispatched": len(inv.report.dispatched),
                "skipped": len(inv.report.skipped),
                "failed": len(inv.report.failed),
            },
        )
        return inv.report

    def resting_state(self, phase: str) -> RunState:
        """State a run of phase would report if it dispatched nothing.

        Reads the deadline without initializing it.
        """
        if phase != self.governed_phase:
            return RunState.UNGOVERNED
        state = self.deadline_state
        if state.initialized and state.is_expired(state.clock()):
            return RunState.GOVERNED_EXPIRED
        return RunState.GOVERNED_FRESH

    def _run_governed(self, inv: _Invocation, descriptors: List[ScriptDescriptor]) -> None:
        state = self.deadline_state
        now = state.clock()

        if not state.initialized:
            state.ensure_initialized(now, self.max_duration)
        elif state.is_expired(now):
            # An earlier batch timed out, or the window passed before we got here
            inv.report.state = RunState.GOVERNED_EXPIRED
            logger.info(f"{inv.phase}: deadline already passed, not blocking")
            self._dispatch_background(inv, descriptors)
            return

        inv.report.state = RunState.GOVERNED_FRESH
        if not descriptors:
            return

        worker = threading.Thread(
            target=self._governed_worker,
            args=(inv, descriptors),
            name=f"{inv.phase}-scripts",
            daemon=True,
        )
        try:
            worker.start()
        except RuntimeError as e:
            logger.warning(f"{inv.phase}: could not start worker ({e}), not blocking")
            self._dispatch_background(inv, descriptors)
            return

        worker.join()

    def _governed_worker(self, inv: _Invocation, descriptors: List[ScriptDescriptor]) -> None:
        state = self.deadline_state
        try:
            watchdog = self.watchdog_factory(state.deadline, state.clock)
            watchdog.start()
        except (RuntimeError, OSError) as e:
            logger.warning(f"{inv.phase}: could not start watchdog ({e}), not blocking")
            self._dispatch_background(inv, descriptors)
            return
        inv.report.watchdog_started = True
        inv.report.state = RunState.GOVERNED_RACING

        remaining: List[ScriptDescriptor] = []
        index = -1
        proc = None
        try:
            for index, descriptor in enumerate(descriptors):
                proc = self._safe_dispatch(inv, descriptor, ExecutionMode.BLOCKING)
                if proc is None:
                    continue

                if self._wait_or_timeout(proc, watchdog):
                    inv.report.awaited.append(descriptor.name)
                    logger.debug(f"{inv.phase}: [{descriptor.name}] exited with status {proc.returncode}")
                    self._emit(
                        inv,
                        "script.completed",
                        "succeeded" if proc.returncode == 0 else "failed",
                        payload={"script": descriptor.name, "exit_code": proc.returncode},
                    )
                    proc = None
                    continue

                logger.warning(f"* {inv.phase} scripts blocking phase timeout")
                state.mark_expired()
                inv.report.timed_out = True
                inv.report.state = RunState.GOVERNED_EXPIRED
                self._emit(
                    inv,
                    "phase.timeout",
                    "timed_out",
                    payload={"script": descriptor.name, "pid": proc.pid},
                )
                remaining = descriptors[index + 1:]
                break
        except Exception:
            # Whatever is left still gets started, just no longer awaited
            logger.exception(f"{inv.phase}: worker failed, running the rest in the background")
            remaining = descriptors[index + 1:]
        finally:
            watchdog.stop()

        if proc is not None:
            self.spawner.release(proc)
        self._dispatch_background(inv, remaining)

    @staticmethod
    def _wait_or_timeout(proc: subprocess.Popen, watchdog: Watchdog) -> bool:
        """Wait for a script or the watchdog, whichever comes first.

        Returns True if the script exited first. The script is left
        running when the watchdog wins.
        """
        try:
            proc.wait(timeout=watchdog.remaining())
            return True
        except subprocess.TimeoutExpired:
            watchdog.wait()
            return False

    def _dispatch_background(self, inv: _Invocation, descriptors: Iterable[ScriptDescriptor]) -> None:
        for descriptor in descriptors:
            self._safe_dispatch(inv, descriptor, ExecutionMode.FIRE_AND_FORGET)

    def _safe_dispatch(
        self, inv: _Invocation, descriptor: ScriptDescriptor, mode: ExecutionMode
    ) -> Optional[subprocess.Popen]:
        try:
            return self._dispatch(inv, descriptor, mode)
        except Exception:
            logger.exception(f"{inv.phase}: dispatch of [{descriptor.name}] failed")
            self._record_failure(inv, descriptor)
            return None

    def _dispatch(
        self, inv: _Invocation, descriptor: ScriptDescriptor, mode: ExecutionMode
    ) -> Optional[subprocess.Popen]:
        """Start one script if the source allows it; None if nothing is running.

        Fire-and-forget children are handed back to the spawner for reaping.
        """
        try:
            eligible = inv.source.eligible(descriptor)
        except OSError as e:
            logger.warning(f"{inv.phase}: cannot inspect [{descriptor.name}]: {e}")
            self._record_failure(inv, descriptor)
            return None
        if not eligible:
            logger.debug(f"{inv.phase}: skip [{descriptor.name}], not eligible")
            inv.report.skipped.append(descriptor.name)
            self._emit(inv, "script.skipped", "skipped", payload={"script": descriptor.name})
            return None

        logger.info(inv.source.exec_label(inv.phase, descriptor))
        try:
            proc = self.spawner.spawn(descriptor)
        except OSError as e:
            logger.warning(f"{inv.phase}: failed to spawn [{descriptor.name}]: {e}")
            proc = None
        if proc is None:
            self._record_failure(inv, descriptor)
            return None

        inv.report.dispatched.append(descriptor.name)
        self._emit(
            inv,
            "script.dispatched",
            "running",
            payload={
                "script": descriptor.name,
                "path": str(descriptor.path),
                "mode": mode.value,
                "pid": proc.pid,
            },
        )
        if mode is ExecutionMode.FIRE_AND_FORGET:
            self.spawner.release(proc)
        return proc

    def _record_failure(self, inv: _Invocation, descriptor: ScriptDescriptor) -> None:
        inv.report.failed.append(descriptor.name)
        self._emit(
            inv,
            "script.spawn_failed",
            "failed",
            payload={"script": descriptor.name, "path": str(descriptor.path)},
        )

    def _emit(
        self,
        inv: _Invocation,
        event_type: str,
        status: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self.events is None:
            return
        self.events.log_event(
            event_type=event_type,
            correlation_id=inv.correlation_id,
            phase=inv.phase,
            status=status,
            payload=payload,
        )


def run_common_scripts(runner: PhaseRunner, phase: str, secure_dir: Path) -> PhaseReport:
    """Run the <secure_dir>/<phase>.d/ batch."""
    return runner.run(phase, DirectorySource(secure_dir))


def run_module_scripts(
    runner: PhaseRunner, phase: str, module_root: Path, modules: List[str]
) -> PhaseReport:
    """Run each module's <phase>.sh, in module order."""
    source = ModuleSource(module_root, modules)
    if not modules:
        logger.info(f"* Running {source.describe(phase)} scripts")
        return PhaseReport(phase=phase, state=runner.resting_state(phase))
    return runner.run(phase, source)
