from __future__ import annotations

import argparse
import logging
import signal
import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from .config import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT, build_config
from .errors import ConfigError
from .logger import create_logger, log_event
from .models import ProbeStatus
from .output import FORMATS, print_results, save_results
from .scanner import ProgressFn, scan

EXIT_OK = 0
EXIT_WRITE_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_CANCELLED = 130


def positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if n <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="TCP connect scanner")
    p.add_argument("-s", "--scan", metavar="IP", help="Target IPv4/IPv6 address (no target: nothing is scanned)")
    p.add_argument("-p", "--port", metavar="START-END", help="Port range (default: 1-1024)")
    p.add_argument("-t", "--time", type=positive_int, default=DEFAULT_TIMEOUT,
                   help=f"Connect timeout in whole seconds (default: {DEFAULT_TIMEOUT})")
    p.add_argument("-o", "--output", metavar="FILE", help="Save results to FILE")
    p.add_argument("-c", "--concurrency", type=positive_int, default=DEFAULT_CONCURRENCY,
                   help=f"Max probes in flight (default: {DEFAULT_CONCURRENCY})")
    p.add_argument("--format", choices=FORMATS, default="json", help="Output file format (default: json)")
    p.add_argument("--open-only", action="store_true", help="Only display/save open ports")
    p.add_argument("--two-status", action="store_true", help="Report ERROR as CLOSED in saved output")
    p.add_argument("--lenient-ports", action="store_true",
                   help="Fall back to 1-1024 on a malformed port range instead of failing")
    p.add_argument("--progress-every", type=int, default=5000, help="Progress update interval (default: 5000, 0 = off)")
    p.add_argument("--log-file", help="Also write log events to this file")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return p


def progress_printer(every: int) -> Optional[ProgressFn]:
    if every <= 0:
        return None
    start_all = time.perf_counter()

    def report(scanned: int, total: int, open_count: int) -> None:
        if scanned % every == 0 or scanned == total:
            elapsed = time.perf_counter() - start_all
            rate = scanned / elapsed if elapsed > 0 else 0.0
            print(
                f"\r[*] Scanned {scanned}/{total} | open={open_count} | {rate:.0f} scans/s",
                end="",
                flush=True,
            )

    return report


@contextmanager
def cancel_on_signals(cancel_event: threading.Event) -> Iterator[None]:
    """
    Sets cancel_event on SIGINT/SIGTERM for the duration of the block.
    Off the main thread signal handlers cannot be installed, so this is a no-op there.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum, frame):
        cancel_event.set()

    sigs = [signal.SIGINT]
    if hasattr(signal, "SIGTERM"):
        sigs.append(signal.SIGTERM)

    previous = {}
    for s in sigs:
        previous[s] = signal.signal(s, handler)
    try:
        yield
    finally:
        for s, h in previous.items():
            signal.signal(s, h)


def print_settings(args: argparse.Namespace) -> None:
    if args.port is not None:
        print(f"Port range specified: {args.port}")
    print(f"Timeout specified: {args.time} seconds")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = create_logger(args.log_file, verbose=args.verbose)

    exit_code = EXIT_OK
    results = None

    if args.scan is not None:
        print(f"Scanning enabled for IP: {args.scan}")
        try:
            config = build_config(
                args.scan,
                port_range=args.port,
                timeout=args.time,
                concurrency=args.concurrency,
                lenient_ports=args.lenient_ports,
            )
        except ConfigError as e:
            log_event(logger, "config_error", {"error": str(e)}, level=logging.ERROR)
            print_settings(args)
            return EXIT_CONFIG_ERROR

        print(f"[*] Target: {config.target} | Ports: {config.ports} ({len(config.ports)}) | Concurrency: {config.concurrency}")
        cancel_event = threading.Event()
        progress = progress_printer(args.progress_every)
        with cancel_on_signals(cancel_event):
            results = scan(config, cancel_event=cancel_event, progress=progress)
        if progress is not None:
            print()  # newline after progress

        for o in results.filter(ProbeStatus.ERROR):
            log_event(logger, "probe_error", {"ip": results.target, "port": o.port, "reason": o.reason},
                      level=logging.WARNING)

        print_results(results, open_only=args.open_only)
        if not results.complete:
            exit_code = EXIT_CANCELLED

        if args.output:
            try:
                path = save_results(
                    results,
                    args.output,
                    fmt=args.format,
                    open_only=args.open_only,
                    two_status=args.two_status,
                )
            except OSError as e:
                log_event(logger, "output_write_failed", {"path": args.output, "error": str(e)},
                          level=logging.WARNING)
                print(f"Error writing to file: {e}")
                exit_code = EXIT_WRITE_FAILED
            else:
                print(f"Results written to file: {path}")

    print_settings(args)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
