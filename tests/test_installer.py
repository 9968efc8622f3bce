"""Tests for service install/remove against an in-memory service manager."""
import pytest

from core.errors import AlreadyInstalled, NotInstalled, ServiceControlError
from core.models import RestartPolicy, ServiceState
from services.installer import (
    DESCRIPTION,
    DISPLAY_NAME,
    SERVICE_NAME,
    install_service,
    remove_service,
)

from tests.helpers import FakeServiceManager


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self):
        return self.now


@pytest.fixture
def manager():
    return FakeServiceManager()


class TestInstall:
    def test_registers_service_with_restart_policy(self, manager):
        install_service(manager, exe_path="C:\\image_server\\image_server.exe")

        service = manager.services[SERVICE_NAME]
        assert service["display_name"] == DISPLAY_NAME
        assert service["description"] == DESCRIPTION
        assert service["exe_path"] == "C:\\image_server\\image_server.exe"
        assert service["policy"] == RestartPolicy(delay_seconds=60, attempts=3, reset_period_seconds=86400)
        assert SERVICE_NAME in manager.event_sources

    def test_restart_policy_covers_non_zero_exit(self, manager):
        install_service(manager)

        assert manager.services[SERVICE_NAME]["policy"].on_non_crash_failure is True

    def test_already_installed_is_not_overwritten(self, manager):
        manager.add(state=ServiceState.RUNNING)

        with pytest.raises(AlreadyInstalled):
            install_service(manager)

        assert ("create", SERVICE_NAME) not in manager.calls
        assert manager.services[SERVICE_NAME] == {"state": ServiceState.RUNNING}

    def test_existing_event_source_is_not_fatal(self, manager):
        manager.event_sources.add(SERVICE_NAME)

        install_service(manager)

        assert SERVICE_NAME in manager.services

    def test_event_source_failure_rolls_back(self, manager):
        manager.fail_event_source = True

        with pytest.raises(ServiceControlError, match="registry write denied"):
            install_service(manager)

        assert SERVICE_NAME not in manager.services
        assert ("delete", SERVICE_NAME) in manager.calls


class TestRemove:
    def test_not_installed(self, manager):
        with pytest.raises(NotInstalled):
            remove_service(manager)

    def test_removes_stopped_service_without_stopping(self, manager):
        manager.add()

        remove_service(manager)

        assert manager.services == {}
        assert manager.event_sources == set()
        assert ("stop", SERVICE_NAME) not in manager.calls

    def test_stops_running_service_and_polls_until_stopped(self, manager):
        manager.add(state=ServiceState.RUNNING)
        manager.stop_after_polls = 2
        clock = FakeClock()

        remove_service(manager, sleep=clock.sleep, clock=clock)

        assert manager.calls == [("stop", SERVICE_NAME), ("delete", SERVICE_NAME)]
        assert clock.sleeps == [1.0, 1.0]

    def test_stop_wait_is_bounded(self, manager):
        manager.add(state=ServiceState.RUNNING)
        manager.stop_after_polls = 1000
        clock = FakeClock()

        with pytest.raises(ServiceControlError, match="did not stop"):
            remove_service(manager, stop_timeout=5.0, sleep=clock.sleep, clock=clock)

        assert SERVICE_NAME in manager.services
        assert clock.now <= 6.0

    def test_query_failure_does_not_block_removal(self, manager):
        manager.add(state=ServiceState.RUNNING)
        manager.fail_query = True

        remove_service(manager)

        assert manager.services == {}

    def test_missing_event_source_is_not_fatal(self, manager):
        manager.add()
        manager.event_sources.clear()

        remove_service(manager)

        assert manager.services == {}
