import logging
import socket
import threading
import time

import pytest

from tcp_scanner.errors import ProbeCancelled
from tcp_scanner.logger import LOGGER_NAME
from tcp_scanner.models import ProbeOutcome, ProbeStatus


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()


@pytest.fixture
def listening_port():
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    srv.bind(("127.0.0.1", 0))
    srv.listen(16)
    yield srv.getsockname()[1]
    srv.close()


@pytest.fixture
def closed_port():
    # bind to grab a free port, then release it so nothing is listening
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


class FakeProber:
    """
    Stand-in for prober.probe: sleeps a per-port delay, honours the stop
    event, and records how many calls overlap.
    """

    def __init__(self, delays=None, open_ports=(), fail_ports=(), default_delay=0.0):
        self.delays = delays or {}
        self.open_ports = set(open_ports)
        self.fail_ports = set(fail_ports)
        self.default_delay = default_delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def __call__(self, address, port, timeout, cancel_event=None):
        with self._lock:
            self.calls.append(port)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(port, self.default_delay)
            if cancel_event is not None:
                if cancel_event.wait(delay):
                    raise ProbeCancelled(port)
            else:
                time.sleep(delay)
            if port in self.fail_ports:
                raise RuntimeError(f"boom on {port}")
            status = ProbeStatus.OPEN if port in self.open_ports else ProbeStatus.CLOSED
            return ProbeOutcome(port=port, status=status, elapsed_s=delay)
        finally:
            with self._lock:
                self.in_flight -= 1
