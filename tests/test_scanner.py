import random
import socket
import threading
import time

import pytest

from tcp_scanner.config import ScanConfig, build_config
from tcp_scanner.models import ProbeStatus
from tcp_scanner.ports import PortRange
from tcp_scanner.scanner import ScanScheduler, scan
from conftest import FakeProber


def _config(start, end, concurrency, timeout=2.0, target="127.0.0.1"):
    return ScanConfig(target=target, ports=PortRange(start, end), timeout=timeout, concurrency=concurrency)


@pytest.mark.parametrize("concurrency", [1, 2, 7, 25, 40])
def test_exactly_one_outcome_per_port_in_order(concurrency):
    rng = random.Random(concurrency)
    delays = {p: rng.uniform(0, 0.01) for p in range(100, 140)}
    fake = FakeProber(delays=delays, open_ports={105, 133})

    rs = ScanScheduler(_config(100, 139, concurrency), probe_fn=fake).run()

    assert rs.ports() == list(range(100, 140))
    assert sorted(fake.calls) == list(range(100, 140))
    assert rs.complete
    assert rs.open_ports() == [105, 133]


def test_order_independent_of_completion_order():
    # later ports finish first
    delays = {p: (120 - p) * 0.005 for p in range(100, 120)}
    fake = FakeProber(delays=delays)
    rs = ScanScheduler(_config(100, 119, 20), probe_fn=fake).run()
    assert [o.port for o in rs] == list(range(100, 120))


def test_concurrency_cap_is_respected():
    fake = FakeProber(default_delay=0.02)
    ScanScheduler(_config(1, 60, 5), probe_fn=fake).run()
    assert 1 <= fake.max_in_flight <= 5


def test_single_probe_failure_does_not_abort():
    fake = FakeProber(fail_ports={3})
    rs = ScanScheduler(_config(1, 6, 3), probe_fn=fake).run()
    assert len(rs) == 6
    assert rs.complete
    err = rs.get(3)
    assert err.status is ProbeStatus.ERROR
    assert "boom on 3" in err.reason
    assert rs.count(ProbeStatus.CLOSED) == 5


def test_progress_callback():
    seen = []
    fake = FakeProber()
    ScanScheduler(_config(1, 10, 4), probe_fn=fake, progress=lambda *a: seen.append(a)).run()
    assert [s[0] for s in seen] == list(range(1, 11))
    assert all(s[1] == 10 for s in seen)


def test_cancel_returns_partial_result():
    fake = FakeProber(default_delay=0.05)
    cancel = threading.Event()
    timeout = 2.0
    cfg = _config(1, 1000, 50, timeout=timeout)
    threading.Timer(0.3, cancel.set).start()

    start = time.monotonic()
    rs = ScanScheduler(cfg, probe_fn=fake).run(cancel)
    elapsed = time.monotonic() - start

    assert len(rs) < 1000
    assert not rs.complete
    assert len(set(rs.ports())) == len(rs)
    assert rs.ports() == sorted(rs.ports())
    assert elapsed < 0.3 + timeout
    assert fake.in_flight == 0


def test_cancel_before_start():
    cancel = threading.Event()
    cancel.set()
    rs = ScanScheduler(_config(1, 100, 10), probe_fn=FakeProber(default_delay=0.05)).run(cancel)
    assert not rs.complete
    assert len(rs) < 100


def test_lenient_invalid_range_scans_default():
    cfg = build_config("127.0.0.1", "invalid", timeout=1, concurrency=64, lenient_ports=True)
    rs = ScanScheduler(cfg, probe_fn=FakeProber()).run()
    assert len(rs) == 1024
    assert rs.ports()[0] == 1 and rs.ports()[-1] == 1024


def test_scan_real_sockets(listening_port, closed_port):
    lo, hi = sorted((listening_port, closed_port))
    if hi - lo > 200:
        pytest.skip("ephemeral ports too far apart")
    cfg = build_config("127.0.0.1", f"{lo}-{hi}", timeout=1, concurrency=50)
    rs = scan(cfg)
    assert rs.complete
    assert len(rs) == hi - lo + 1
    assert rs.get(listening_port).status is ProbeStatus.OPEN
    assert rs.get(closed_port).status is ProbeStatus.CLOSED


def test_port_80_scenario():
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        srv.bind(("127.0.0.1", 80))
    except OSError:
        srv.close()
        pytest.skip("cannot bind port 80")
    srv.listen(8)
    try:
        rs = scan(build_config("127.0.0.1", "80-85", timeout=2))
    finally:
        srv.close()
    assert [(o.port, o.status.value) for o in rs] == [
        (80, "OPEN"),
        (81, "CLOSED"),
        (82, "CLOSED"),
        (83, "CLOSED"),
        (84, "CLOSED"),
        (85, "CLOSED"),
    ]
