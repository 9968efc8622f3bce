"""Shared test doubles and server helpers."""
import threading

from core.config import ServerConfig
from core.errors import EventSourceConflict, ServiceControlError
from core.models import ServiceState
from servers.image_server import ImageServer
from services.installer import SERVICE_NAME, ServiceManager

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(32))


def start_server(folder, **kwargs):
    server = ImageServer(ServerConfig(port="0", folder=str(folder)), host="127.0.0.1", **kwargs)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    assert server.wait_until_bound(5)
    return server, thread


class FakeServiceManager(ServiceManager):
    def __init__(self):
        self.services = {}
        self.event_sources = set()
        self.calls = []
        self.stop_after_polls = 0
        self.fail_event_source = False
        self.fail_query = False

    def add(self, name=SERVICE_NAME, state=ServiceState.STOPPED):
        self.services[name] = {"state": state}
        self.event_sources.add(name)

    def exists(self, name):
        return name in self.services

    def create(self, name, display_name, description, exe_path, exe_args):
        self.calls.append(("create", name))
        self.services[name] = {
            "state": ServiceState.STOPPED,
            "display_name": display_name,
            "description": description,
            "exe_path": exe_path,
        }

    def set_restart_policy(self, name, policy):
        self.services[name]["policy"] = policy

    def query_state(self, name):
        if self.fail_query:
            raise ServiceControlError("access denied")
        service = self.services[name]
        if service["state"] is ServiceState.STOP_PENDING:
            if self.stop_after_polls <= 0:
                service["state"] = ServiceState.STOPPED
            self.stop_after_polls -= 1
        return service["state"]

    def stop(self, name):
        self.calls.append(("stop", name))
        self.services[name]["state"] = ServiceState.STOP_PENDING

    def delete(self, name):
        self.calls.append(("delete", name))
        del self.services[name]

    def install_event_source(self, name):
        if self.fail_event_source:
            raise ServiceControlError("registry write denied")
        if name in self.event_sources:
            raise EventSourceConflict("registry key already exists")
        self.event_sources.add(name)

    def remove_event_source(self, name):
        if name not in self.event_sources:
            raise EventSourceConflict("registry key does not exist")
        self.event_sources.remove(name)
