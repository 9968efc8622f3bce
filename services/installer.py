from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

from core.errors import AlreadyInstalled, EventSourceConflict, NotInstalled, ServiceControlError
from core.models import RestartPolicy, ServiceState

logger = logging.getLogger(__name__)

SERVICE_NAME = "ImageServer"
DISPLAY_NAME = "Image Server"
DESCRIPTION = "A simple image-serving web server."

RESTART_POLICY = RestartPolicy(delay_seconds=60, attempts=3, reset_period_seconds=24 * 60 * 60)
STOP_POLL_SECONDS = 1.0
STOP_TIMEOUT_SECONDS = 60.0


class ServiceManager:
    """Operations the installer needs from the OS service control manager."""

    def exists(self, name: str) -> bool:
        raise NotImplementedError

    def create(self, name: str, display_name: str, description: str,
               exe_path: Optional[str], exe_args: Optional[Sequence[str]]) -> None:
        raise NotImplementedError

    def set_restart_policy(self, name: str, policy: RestartPolicy) -> None:
        raise NotImplementedError

    def query_state(self, name: str) -> ServiceState:
        raise NotImplementedError

    def stop(self, name: str) -> None:
        raise NotImplementedError

    def delete(self, name: str) -> None:
        raise NotImplementedError

    def install_event_source(self, name: str) -> None:
        """Raise EventSourceConflict when the source is already registered."""
        raise NotImplementedError

    def remove_event_source(self, name: str) -> None:
        """Raise EventSourceConflict when the source is not registered."""
        raise NotImplementedError


def install_service(
    manager: ServiceManager,
    exe_path: Optional[str] = None,
    exe_args: Optional[Sequence[str]] = None,
    name: str = SERVICE_NAME,
    policy: RestartPolicy = RESTART_POLICY,
) -> None:
    if manager.exists(name):
        raise AlreadyInstalled(f"service {name} already exists - please remove it first")

    manager.create(name, DISPLAY_NAME, DESCRIPTION, exe_path, exe_args)
    logger.info("Created service %s", name)

    try:
        manager.set_restart_policy(name, policy)
        try:
            manager.install_event_source(name)
        except EventSourceConflict as exc:
            logger.info("Event source %s already registered: %s", name, exc)
    except ServiceControlError:
        logger.error("Rolling back partially installed service %s", name)
        manager.delete(name)
        raise


def _wait_until_stopped(
    manager: ServiceManager,
    name: str,
    poll_interval: float,
    stop_timeout: float,
    sleep: Callable[[float], None],
    clock: Callable[[], float],
) -> None:
    deadline = clock() + stop_timeout
    while True:
        try:
            state = manager.query_state(name)
        except ServiceControlError as exc:
            logger.warning("Stopped polling service %s: %s", name, exc)
            return
        if state is ServiceState.STOPPED:
            return
        if clock() >= deadline:
            raise ServiceControlError(f"service {name} did not stop within {stop_timeout}s")
        sleep(poll_interval)


def remove_service(
    manager: ServiceManager,
    name: str = SERVICE_NAME,
    poll_interval: float = STOP_POLL_SECONDS,
    stop_timeout: float = STOP_TIMEOUT_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    if not manager.exists(name):
        raise NotInstalled(f"service {name} is not installed")

    try:
        state = manager.query_state(name)
    except ServiceControlError as exc:
        logger.warning("Could not query service %s: %s", name, exc)
        state = None

    if state is not None and state is not ServiceState.STOPPED:
        logger.info("Stopping service %s", name)
        manager.stop(name)
        _wait_until_stopped(manager, name, poll_interval, stop_timeout, sleep, clock)

    manager.delete(name)
    logger.info("Deleted service %s", name)

    try:
        manager.remove_event_source(name)
    except EventSourceConflict as exc:
        logger.info("Event source %s already removed: %s", name, exc)
