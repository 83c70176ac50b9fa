from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Optional

from .config import ScanConfig
from .errors import ProbeCancelled
from .logger import log_event
from .models import ProbeOutcome, ProbeStatus, ResultSet, ResultSetBuilder
from .prober import probe
from .targets import address_family

log = logging.getLogger(__name__)

ProbeFn = Callable[[str, int, float, Optional[threading.Event]], ProbeOutcome]
ProgressFn = Callable[[int, int, int], None]

# how long the admission loop may go without looking at the cancel event
DEFAULT_TICK = 0.1


class ScanScheduler:
    """
    Runs one probe per port in config.ports with at most config.concurrency
    probes in flight.

    Only the thread calling run() touches the result builder and the pending
    map; workers share nothing but the stop event.
    """

    def __init__(
        self,
        config: ScanConfig,
        probe_fn: ProbeFn = probe,
        progress: Optional[ProgressFn] = None,
        tick: float = DEFAULT_TICK,
    ):
        self.config = config
        self.probe_fn = probe_fn
        self.progress = progress
        self.tick = tick

    def run(self, cancel_event: Optional[threading.Event] = None) -> ResultSet:
        config = self.config
        total = len(config.ports)
        builder = ResultSetBuilder(config.target, config.ports)
        jobs = iter(config.ports.expand())
        stop = threading.Event()
        open_count = 0
        cancelled = False
        start_all = time.perf_counter()

        log_event(log, "scan_start", {
            "target": config.target,
            "family": address_family(config.target),
            "ports": str(config.ports),
            "total": total,
            "timeout_s": config.timeout,
            "concurrency": config.concurrency,
        })

        pool = ThreadPoolExecutor(max_workers=config.concurrency, thread_name_prefix="probe")
        pending: Dict[Future, int] = {}

        def submit_next() -> bool:
            try:
                port = next(jobs)
            except StopIteration:
                return False
            fut = pool.submit(self.probe_fn, config.target, port, config.timeout, stop)
            pending[fut] = port
            return True

        try:
            # Prime one job per slot
            while len(pending) < config.concurrency and submit_next():
                pass

            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break

                done, _ = wait(pending, timeout=self.tick, return_when=FIRST_COMPLETED)
                for fut in done:
                    port = pending.pop(fut)
                    outcome = self._collect(fut, port)
                    if outcome is None:
                        continue
                    builder.add(outcome)
                    if outcome.is_open:
                        open_count += 1
                    if self.progress is not None:
                        self.progress(len(builder), total, open_count)

                    # A slot freed up: admit the next port
                    submit_next()
        finally:
            # Reached with work still pending only on cancel or an exception
            if pending:
                stop.set()
                for fut in pending:
                    fut.cancel()
            pool.shutdown(wait=True, cancel_futures=True)

        if cancelled:
            # Probes that finished before noticing the stop still count
            for fut, port in sorted(pending.items(), key=lambda kv: kv[1]):
                if fut.cancelled():
                    continue
                outcome = self._collect(fut, port)
                if outcome is not None:
                    builder.add(outcome)

        result = builder.freeze(complete=len(builder) == total)
        elapsed = time.perf_counter() - start_all
        log_event(log, "scan_cancelled" if cancelled else "scan_done", {
            "target": config.target,
            "scanned": len(result),
            "total": total,
            "complete": result.complete,
            "elapsed_s": round(elapsed, 3),
            **result.summary(),
        })
        return result

    def _collect(self, fut: Future, port: int) -> Optional[ProbeOutcome]:
        try:
            return fut.result()
        except ProbeCancelled:
            return None
        except Exception as e:
            # One broken probe must not lose the port or stop the scan
            log.warning("probe of port %d raised %r; recording as ERROR", port, e)
            return ProbeOutcome(port=port, status=ProbeStatus.ERROR, reason=f"probe raised: {e!r}")


def scan(
    config: ScanConfig,
    cancel_event: Optional[threading.Event] = None,
    progress: Optional[ProgressFn] = None,
) -> ResultSet:
    return ScanScheduler(config, progress=progress).run(cancel_event)
