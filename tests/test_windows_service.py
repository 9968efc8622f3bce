"""Tests for the SCM status translation; needs pywin32."""
import pytest

win32service = pytest.importorskip("win32service")
winerror = pytest.importorskip("winerror")

from core.models import ServiceState, ServiceStatus  # noqa: E402
from services.windows_service import ImageServerService  # noqa: E402


@pytest.fixture
def service():
    instance = ImageServerService.__new__(ImageServerService)
    instance.reports = []
    instance.ReportServiceStatus = lambda state, **kwargs: instance.reports.append((state, kwargs))
    return instance


class TestStatusReports:
    def test_clean_stop_reports_success(self, service):
        service._report(ServiceStatus(ServiceState.STOPPED))

        assert service.reports == [(win32service.SERVICE_STOPPED, {"waitHint": 0})]

    def test_failure_exit_code_is_service_specific_error(self, service):
        service._report(ServiceStatus(ServiceState.STOPPED, exit_code=1))

        state, kwargs = service.reports[0]
        assert state == win32service.SERVICE_STOPPED
        assert kwargs["win32ExitCode"] == winerror.ERROR_SERVICE_SPECIFIC_ERROR
        assert kwargs["svcExitCode"] == 1
