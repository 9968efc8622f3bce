from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple


class ServiceState(str, Enum):
    START_PENDING = "start_pending"
    RUNNING = "running"
    STOP_PENDING = "stop_pending"
    STOPPED = "stopped"


class ControlCode(str, Enum):
    INTERROGATE = "interrogate"
    STOP = "stop"
    SHUTDOWN = "shutdown"
    PAUSE = "pause"
    CONTINUE = "continue"


ACCEPTED_CONTROLS: Tuple[ControlCode, ...] = (ControlCode.STOP, ControlCode.SHUTDOWN)


@dataclass(frozen=True)
class ServiceStatus:
    state: ServiceState
    accepts: Tuple[ControlCode, ...] = field(default=ACCEPTED_CONTROLS)
    wait_hint_ms: int = 0
    exit_code: int = 0


@dataclass(frozen=True)
class RestartPolicy:
    delay_seconds: int = 60
    attempts: int = 3
    reset_period_seconds: int = 24 * 60 * 60
    # also restart when the service reports Stopped with a non-zero exit code
    on_non_crash_failure: bool = True
