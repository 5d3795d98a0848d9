# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""JSONL event sink for boot phase runs.

Events are observational: a failure to write one is logged and never
changes how a phase is dispatched.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class EventClient:
    """Append-only JSONL event logger shared by the caller and phase workers."""

    def __init__(self, log_path: Path):
        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def log_event(
        self,
        event_type: str,
        correlation_id: str,
        phase: str,
        status: str,
        payload: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Append one event line tagged with the phase and host pid."""
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "correlation_id": correlation_id,
            "phase": phase,
            "status": status,
            "pid": os.getpid(),
        }
        if payload:
            event["payload"] = payload
        if error_message:
            event["error_message"] = error_message

        line = json.dumps(event) + "\n"
        try:
            with self._lock:
                with open(self.log_path, "a") as f:
                    f.write(line)
        except OSError as e:
            logger.warning(f"Could not write event {event_type} to {self.log_path}: {e}")


def open_event_client(log_path: Optional[Path]) -> Optional[EventClient]:
    """Build an event client for a configured path, or None when events are off."""
    if log_path is None:
        return None
    return EventClient(Path(log_path).expanduser())
