"""
Windows bindings for the image server service.

ImageServerService is hosted by the service control manager either from a
frozen executable (run_service) or through pythonservice.exe, which loads
this module by file path.
"""

import sys
import os

# Add parent directory to path so we can import core when hosted by pythonservice.exe
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logging
from typing import Optional, Sequence

import pywintypes
import servicemanager
import win32api
import win32con
import win32evtlogutil
import win32service
import win32serviceutil
import winerror

from core.config import load_file_config
from core.errors import EventSourceConflict, ServiceControlError
from core.models import ControlCode, RestartPolicy, ServiceState, ServiceStatus
from servers.image_server import ImageServer
from services.installer import DESCRIPTION, DISPLAY_NAME, SERVICE_NAME, ServiceManager
from services.lifecycle import ServiceHost
from services.logger import setup_event_logger

EVENT_LOG_TYPE = "Application"
EVENT_SOURCE_KEY = "SYSTEM\\CurrentControlSet\\Services\\EventLog\\" + EVENT_LOG_TYPE + "\\{}"

_TO_WIN32_STATE = {
    ServiceState.START_PENDING: win32service.SERVICE_START_PENDING,
    ServiceState.RUNNING: win32service.SERVICE_RUNNING,
    ServiceState.STOP_PENDING: win32service.SERVICE_STOP_PENDING,
    ServiceState.STOPPED: win32service.SERVICE_STOPPED,
}
_FROM_WIN32_STATE = {value: key for key, value in _TO_WIN32_STATE.items()}


class ImageServerService(win32serviceutil.ServiceFramework):
    _svc_name_ = SERVICE_NAME
    _svc_display_name_ = DISPLAY_NAME
    _svc_description_ = DESCRIPTION

    def __init__(self, args):
        super().__init__(args)
        self.logger = logging.getLogger(__name__)
        self.host = ServiceHost(load_file_config, ImageServer, self._report, logger=self.logger)
        self.exit_code = 0

    def GetAcceptedControls(self):
        return win32service.SERVICE_ACCEPT_STOP | win32service.SERVICE_ACCEPT_SHUTDOWN

    def _report(self, status: ServiceStatus) -> None:
        # non-zero exit codes go out as service-specific errors so that the
        # failure actions treat the stop as a failure
        if status.exit_code:
            self.ReportServiceStatus(
                _TO_WIN32_STATE[status.state],
                waitHint=status.wait_hint_ms,
                win32ExitCode=winerror.ERROR_SERVICE_SPECIFIC_ERROR,
                svcExitCode=status.exit_code,
            )
        else:
            self.ReportServiceStatus(_TO_WIN32_STATE[status.state], waitHint=status.wait_hint_ms)

    def SvcRun(self):
        setup_event_logger(SERVICE_NAME)
        self.logger.info("Service starting...")

        self.exit_code = self.host.run()
        self.logger.info("Service exited with code %s", self.exit_code)

    def SvcStop(self):
        self.host.control(ControlCode.STOP)

    def SvcShutdown(self):
        self.host.control(ControlCode.SHUTDOWN)

    def SvcInterrogate(self):
        self.host.control(ControlCode.INTERROGATE)

    def SvcOther(self, control):
        self.logger.error("Unexpected control request: %d", control)


def run_service() -> None:
    """Hand the process to the service control dispatcher."""
    servicemanager.Initialize()
    servicemanager.PrepareToHostSingle(ImageServerService)
    try:
        servicemanager.StartServiceCtrlDispatcher()
    except pywintypes.error as exc:
        if exc.winerror == winerror.ERROR_FAILED_SERVICE_CONTROLLER_CONNECT:
            raise ServiceControlError(
                "This program can only be run as a Windows service or with the debug flag"
            ) from exc
        raise ServiceControlError(f"service dispatcher failed: {exc.strerror}") from exc


def _scm_error(action: str, name: str, exc: pywintypes.error) -> ServiceControlError:
    return ServiceControlError(f"failed to {action} service {name}: {exc.strerror}")


class WindowsServiceManager(ServiceManager):
    def exists(self, name: str) -> bool:
        try:
            win32serviceutil.QueryServiceStatus(name)
        except pywintypes.error as exc:
            if exc.winerror == winerror.ERROR_SERVICE_DOES_NOT_EXIST:
                return False
            raise _scm_error("query", name, exc) from exc
        return True

    def create(self, name: str, display_name: str, description: str,
               exe_path: Optional[str], exe_args: Optional[Sequence[str]]) -> None:
        if exe_path is None and getattr(sys, "frozen", False):
            exe_path = sys.executable
        try:
            win32serviceutil.InstallService(
                win32serviceutil.GetServiceClassString(ImageServerService),
                name,
                display_name,
                startType=win32service.SERVICE_AUTO_START,
                exeName=exe_path,
                exeArgs=" ".join(exe_args) if exe_args else None,
                description=description,
            )
        except pywintypes.error as exc:
            raise _scm_error("create", name, exc) from exc

    def set_restart_policy(self, name: str, policy: RestartPolicy) -> None:
        actions = [(win32service.SC_ACTION_RESTART, policy.delay_seconds * 1000)] * policy.attempts
        try:
            hscm = win32service.OpenSCManager(None, None, win32service.SC_MANAGER_ALL_ACCESS)
            try:
                hs = win32service.OpenService(hscm, name, win32service.SERVICE_ALL_ACCESS)
                try:
                    win32service.ChangeServiceConfig2(hs, win32service.SERVICE_CONFIG_FAILURE_ACTIONS, {
                        "ResetPeriod": policy.reset_period_seconds,
                        "RebootMsg": "",
                        "Command": "",
                        "Actions": actions,
                    })
                    win32service.ChangeServiceConfig2(
                        hs, win32service.SERVICE_CONFIG_FAILURE_ACTIONS_FLAG, policy.on_non_crash_failure
                    )
                finally:
                    win32service.CloseServiceHandle(hs)
            finally:
                win32service.CloseServiceHandle(hscm)
        except pywintypes.error as exc:
            raise _scm_error("configure recovery for", name, exc) from exc

    def query_state(self, name: str) -> ServiceState:
        try:
            status = win32serviceutil.QueryServiceStatus(name)
        except pywintypes.error as exc:
            raise _scm_error("query", name, exc) from exc
        # paused and continue/pause pending all count as not stopped
        return _FROM_WIN32_STATE.get(status[1], ServiceState.RUNNING)

    def stop(self, name: str) -> None:
        try:
            win32serviceutil.ControlService(name, win32service.SERVICE_CONTROL_STOP)
        except pywintypes.error as exc:
            raise _scm_error("stop", name, exc) from exc

    def delete(self, name: str) -> None:
        try:
            win32serviceutil.RemoveService(name)
        except pywintypes.error as exc:
            raise _scm_error("delete", name, exc) from exc

    def _event_source_registered(self, name: str) -> bool:
        try:
            key = win32api.RegOpenKey(win32con.HKEY_LOCAL_MACHINE, EVENT_SOURCE_KEY.format(name))
        except pywintypes.error as exc:
            if exc.winerror == winerror.ERROR_FILE_NOT_FOUND:
                return False
            raise ServiceControlError(f"failed to read event source {name}: {exc.strerror}") from exc
        win32api.RegCloseKey(key)
        return True

    def install_event_source(self, name: str) -> None:
        if self._event_source_registered(name):
            raise EventSourceConflict(f"event source {name} already registered")
        try:
            win32evtlogutil.AddSourceToRegistry(name, eventLogType=EVENT_LOG_TYPE)
        except pywintypes.error as exc:
            raise ServiceControlError(f"failed to install event source {name}: {exc.strerror}") from exc

    def remove_event_source(self, name: str) -> None:
        try:
            win32evtlogutil.RemoveSourceFromRegistry(name, eventLogType=EVENT_LOG_TYPE)
        except pywintypes.error as exc:
            if exc.winerror == winerror.ERROR_FILE_NOT_FOUND:
                raise EventSourceConflict(f"event source {name} does not exist") from exc
            raise ServiceControlError(f"failed to remove event source {name}: {exc.strerror}") from exc

