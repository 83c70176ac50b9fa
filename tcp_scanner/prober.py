from __future__ import annotations

import errno
import logging
import os
import selectors
import socket
import threading
import time
from typing import Optional, Set, Tuple

from .errors import ProbeCancelled
from .logger import log_event
from .models import ProbeOutcome, ProbeStatus

log = logging.getLogger(__name__)

# upper bound on how long a cancel goes unnoticed inside one connect
POLL_SLICE = 0.05


def _errnos(*names: str) -> Set[int]:
    return {getattr(errno, n) for n in names if hasattr(errno, n)}


# connect still running on a non-blocking socket (10035 is WSAEWOULDBLOCK)
_IN_PROGRESS = _errnos("EINPROGRESS", "EWOULDBLOCK", "EALREADY") | {10035}

_CONNECTED = _errnos("EISCONN") | {0}

# the target refused (a reset mid-handshake counts as a refusal) or stayed silent
_CLOSED = _errnos(
    "ECONNREFUSED",
    "ECONNRESET",
    "ETIMEDOUT",
    "WSAECONNREFUSED",
    "WSAECONNRESET",
    "WSAETIMEDOUT",
)


def _resolve(address: str, port: int) -> Tuple[int, int, int, tuple]:
    # numeric only: a DNS lookup here could block past the deadline
    infos = socket.getaddrinfo(
        address, port, type=socket.SOCK_STREAM, flags=socket.AI_NUMERICHOST
    )
    family, socktype, proto, _, sockaddr = infos[0]
    return family, socktype, proto, sockaddr


def _wait_connected(
    sock: socket.socket,
    port: int,
    deadline: float,
    cancel_event: Optional[threading.Event],
) -> Optional[int]:
    """
    Waits for a non-blocking connect to finish.
    Returns SO_ERROR once the socket is ready, or None if the deadline passed.
    """
    with selectors.DefaultSelector() as sel:
        sel.register(sock, selectors.EVENT_WRITE)
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise ProbeCancelled(port)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            if sel.select(timeout=min(remaining, POLL_SLICE)):
                return sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)


def _outcome(port: int, status: ProbeStatus, start: float, reason: Optional[str] = None) -> ProbeOutcome:
    elapsed = time.perf_counter() - start
    if reason is not None:
        log_event(log, "connect_error", {"port": port, "reason": reason}, level=logging.DEBUG)
    return ProbeOutcome(port=port, status=status, elapsed_s=round(elapsed, 4), reason=reason)


def probe(
    address: str,
    port: int,
    timeout: float,
    cancel_event: Optional[threading.Event] = None,
) -> ProbeOutcome:
    """
    One TCP connect attempt to (address, port), never longer than `timeout`.

    OPEN if the handshake completes (the socket is closed right away, nothing
    is sent). CLOSED if the port refuses or the deadline passes. ERROR for everything
    else: bad address, no free sockets, no route to the host, or any other
    local failure.

    Raises ProbeCancelled if `cancel_event` is set before the attempt finishes.
    """
    start = time.perf_counter()
    deadline = time.monotonic() + timeout

    if cancel_event is not None and cancel_event.is_set():
        raise ProbeCancelled(port)

    try:
        family, socktype, proto, sockaddr = _resolve(address, port)
    except socket.gaierror as e:
        return _outcome(port, ProbeStatus.ERROR, start, f"address lookup failed: {e}")

    sock: Optional[socket.socket] = None
    try:
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as e:
            return _outcome(port, ProbeStatus.ERROR, start, f"cannot allocate socket: {e}")

        sock.setblocking(False)
        err: Optional[int] = sock.connect_ex(sockaddr)
        if err in _IN_PROGRESS:
            err = _wait_connected(sock, port, deadline, cancel_event)

        if err is None or err in _CLOSED:
            return _outcome(port, ProbeStatus.CLOSED, start)
        if err in _CONNECTED:
            return _outcome(port, ProbeStatus.OPEN, start)
        return _outcome(port, ProbeStatus.ERROR, start, f"connect failed: {os.strerror(err)} (errno {err})")
    except OSError as e:
        return _outcome(port, ProbeStatus.ERROR, start, f"connect failed: {e}")
    finally:
        if sock is not None:
            sock.close()
