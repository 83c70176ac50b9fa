from __future__ import annotations

import csv
import json
import os

from .models import ProbeOutcome, ProbeStatus, ResultSet

FORMATS = ("json", "csv", "txt")


def format_row(target: str, o: ProbeOutcome) -> str:
    row = f"Target: {target} | Port {o.port}: {o.status.value} ({o.elapsed_s:.4f}s)"
    if o.reason:
        row += f" | Reason: {o.reason}"
    return row


def print_results(results: ResultSet, open_only: bool) -> None:
    print(f"Found {results.count(ProbeStatus.OPEN)} open ports")
    if not results.complete:
        print(f"[!] Scan incomplete: {len(results)}/{len(results.port_range)} ports scanned")

    shown = results.filter(ProbeStatus.OPEN) if open_only else results
    for o in shown:
        print(format_row(results.target, o))


def save_results(
    results: ResultSet,
    path: str,
    fmt: str = "json",
    open_only: bool = False,
    two_status: bool = False,
) -> str:
    """
    Writes results to `path` and returns it.
    json is a list of {"ip", "port", "status"} records; two_status reports
    ERROR as CLOSED. Raises OSError if the file cannot be written.
    """
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported format: {fmt}")

    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    filtered = results.filter(ProbeStatus.OPEN) if open_only else results
    records = filtered.to_records(two_status=two_status)

    if fmt == "json":
        with open(path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2)

    elif fmt == "csv":
        with open(path, "w", newline="", encoding="utf-8") as f:
            w = csv.writer(f)
            w.writerow(["ip", "port", "status", "reason"])
            for rec, o in zip(records, filtered):
                w.writerow([rec["ip"], rec["port"], rec["status"], o.reason or ""])

    else:
        with open(path, "w", encoding="utf-8") as f:
            f.write(f"Found {results.count(ProbeStatus.OPEN)} open ports\n")
            for rec in records:
                f.write(f"{rec['ip']}:{rec['port']} {rec['status']}\n")

    return path
