"""Service lifecycle: drives the HTTP listener from service control requests.

The control loop runs on the caller's thread and blocks on a single inbox
queue.  The listener runs on its own thread and only talks back through that
inbox, by posting a failure when serving ends with an error.
"""

import logging
import queue
import threading
import time
from typing import Callable, Optional

from core.errors import ConfigError, ShutdownTimeout
from core.models import ACCEPTED_CONTROLS, ControlCode, ServiceState, ServiceStatus
from core.state import RunState

START_WAIT_HINT_MS = 10000
STOP_WAIT_HINT_MS = 10000
STARTUP_GRACE_SECONDS = 1.0
SHUTDOWN_TIMEOUT_SECONDS = 5.0


class _ListenerFailed:
    def __init__(self, error: BaseException):
        self.error = error


class ServiceLifecycle:
    def __init__(
        self,
        listener,
        report_status: Callable[[ServiceStatus], None],
        logger: Optional[logging.Logger] = None,
        startup_grace_seconds: float = STARTUP_GRACE_SECONDS,
        shutdown_timeout_seconds: float = SHUTDOWN_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.listener = listener
        self.report_status = report_status
        self.logger = logger or logging.getLogger(__name__)
        self.startup_grace_seconds = startup_grace_seconds
        self.shutdown_timeout_seconds = shutdown_timeout_seconds
        self.sleep = sleep

        self.thread = None
        self._inbox = queue.Queue()
        self._run_state = RunState()
        self._status = ServiceStatus(ServiceState.STOPPED)
        self._status_lock = threading.Lock()

    def is_running(self) -> bool:
        return self._run_state.is_running()

    @property
    def status(self) -> ServiceStatus:
        with self._status_lock:
            return self._status

    def control(self, code) -> None:
        """Queue a control request; safe to call from any thread."""
        self._inbox.put(ControlCode(code))

    def _report(self, state: ServiceState, wait_hint_ms: int = 0, exit_code: int = 0) -> ServiceStatus:
        status = ServiceStatus(state=state, accepts=ACCEPTED_CONTROLS, wait_hint_ms=wait_hint_ms, exit_code=exit_code)
        with self._status_lock:
            self._status = status
        self.report_status(status)
        return status

    def _serve(self) -> None:
        try:
            self.listener.serve_forever()
        except Exception as exc:
            if not self.is_running():
                self.logger.warning("HTTP server error during shutdown ignored: %s", exc)
                return
            self.logger.error("HTTP server error: %s", exc)
            self._inbox.put(_ListenerFailed(exc))

    def run(self) -> int:
        """Run until stopped; returns the service exit code."""
        self._report(ServiceState.START_PENDING, wait_hint_ms=START_WAIT_HINT_MS)
        self.logger.info("Service execute started")

        self._run_state.set_running(True)
        self.thread = threading.Thread(target=self._serve, name="image-server-listener", daemon=True)
        self.thread.start()

        self.sleep(self.startup_grace_seconds)
        self._report(ServiceState.RUNNING)
        self.logger.info("Service status set to running")

        while True:
            message = self._inbox.get()

            if isinstance(message, _ListenerFailed):
                self._run_state.set_running(False)
                self.logger.error("Service failed: %s", message.error)
                self._report(ServiceState.STOPPED, exit_code=1)
                return 1

            if message is ControlCode.INTERROGATE:
                self.logger.info("Service interrogate received")
                self.report_status(self.status)
            elif message in ACCEPTED_CONTROLS:
                return self._stop(message)
            else:
                self.logger.error("Unexpected control request: %s", message.value)

    def _stop(self, code: ControlCode) -> int:
        self.logger.info("Service %s received", code.value)
        self._report(ServiceState.STOP_PENDING, wait_hint_ms=STOP_WAIT_HINT_MS)

        self._run_state.set_running(False)
        try:
            self.listener.shutdown(self.shutdown_timeout_seconds)
        except ShutdownTimeout as exc:
            self.logger.warning("Shutdown did not complete: %s", exc)
        except Exception as exc:
            self.logger.error("Error during shutdown: %s", exc)

        self.logger.info("Service stopped successfully")
        self._report(ServiceState.STOPPED)
        return 0


class ServiceHost:
    """Loads config and runs a ServiceLifecycle, accepting controls from the start.

    A stop or shutdown that arrives while the config is still loading is
    remembered; the service then reports Stopped without starting the listener.
    """

    def __init__(
        self,
        load_config: Callable[[], object],
        make_listener: Callable[[object], object],
        report_status: Callable[[ServiceStatus], None],
        logger: Optional[logging.Logger] = None,
        **lifecycle_options,
    ):
        self.load_config = load_config
        self.make_listener = make_listener
        self.report_status = report_status
        self.logger = logger or logging.getLogger(__name__)
        self.lifecycle_options = lifecycle_options

        self.lifecycle: Optional[ServiceLifecycle] = None
        self.pending_stop: Optional[ControlCode] = None
        self._lock = threading.Lock()

    def control(self, code) -> None:
        code = ControlCode(code)
        with self._lock:
            lifecycle = self.lifecycle
            if lifecycle is None:
                if code in ACCEPTED_CONTROLS:
                    self.logger.info("Service %s received during startup", code.value)
                    self.pending_stop = code
                else:
                    self.logger.info("Control request %s ignored during startup", code.value)
                return
        lifecycle.control(code)

    def run(self) -> int:
        try:
            config = self.load_config()
        except ConfigError as exc:
            self.logger.error("Failed to load config: %s", exc)
            self.report_status(ServiceStatus(ServiceState.STOPPED, exit_code=1))
            return 1

        with self._lock:
            if self.pending_stop is not None:
                self.logger.info("Service stopped before the listener started")
                self.report_status(ServiceStatus(ServiceState.STOPPED))
                return 0
            self.lifecycle = ServiceLifecycle(
                self.make_listener(config), self.report_status, logger=self.logger, **self.lifecycle_options
            )
        return self.lifecycle.run()
