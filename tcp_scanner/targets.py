from __future__ import annotations

import ipaddress

from .errors import InvalidAddressError


def parse_target(target: str) -> str:
    """
    Validates a scan target and returns its canonical text form.
    Supports:
      - IPv4: "172.20.0.10"
      - IPv6: "::1", "fe80::1%eth0"
    Hostnames and networks are rejected.
    """
    if not isinstance(target, str):
        raise InvalidAddressError(f"Target must be a string, got {target!r}")
    target = target.strip()
    if not target:
        raise InvalidAddressError("Empty target")

    try:
        ip = ipaddress.ip_address(target)
    except ValueError as e:
        raise InvalidAddressError(f"Target is not an IP address: {target!r}") from e
    return str(ip)


def address_family(target: str) -> str:
    return "ipv6" if ipaddress.ip_address(target).version == 6 else "ipv4"
