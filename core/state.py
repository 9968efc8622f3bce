import threading


class RunState:
    def __init__(self):
        self.lock = threading.Lock()
        self._running = False

    def set_running(self, running: bool) -> None:
        with self.lock:
            self._running = bool(running)

    def is_running(self) -> bool:
        with self.lock:
            return self._running
