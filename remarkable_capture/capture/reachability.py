#!/usr/bin/env python3
"""Address validation and ping-based liveness probe"""

import platform
import re
import subprocess
from typing import Callable

from .errors import ValidationError

_DOTTED_QUAD = re.compile(r"([0-9]{1,3}\.){3}[0-9]{1,3}")

# Upper bound on the probe subprocess itself; ping waits ~1 s for the reply
PROBE_PROCESS_TIMEOUT = 5.0


def validate_address(address: str) -> bool:
    """True iff address is four dot-separated integers, each 0-255"""
    if not isinstance(address, str) or not _DOTTED_QUAD.fullmatch(address):
        return False
    return all(0 <= int(octet) <= 255 for octet in address.split("."))


def build_ping_command(address: str) -> list:
    """Single echo request with a one second wait, per platform"""
    if platform.system() == "Windows":
        return ["ping", "-n", "1", "-w", "1000", address]
    return ["ping", "-c", "1", "-W", "1", address]


def check_reachability(address: str, runner: Callable = subprocess.run) -> bool:
    """
    Probe address with one ping.

    Args:
        address: IPv4 dotted-quad
        runner: subprocess.run compatible callable (tests inject a fake)

    Returns:
        True if the device answered, False otherwise. Never raises on
        probe failure.

    Raises:
        ValidationError: If address is malformed (no probe is sent)
    """
    if not validate_address(address):
        raise ValidationError(
            f"Invalid IP address format: {address!r}. Please check settings."
        )

    cmd = build_ping_command(address)
    try:
        result = runner(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=PROBE_PROCESS_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        print(f"[Probe] {address} probe failed: {exc}")
        return False

    reachable = result.returncode == 0
    print(f"[Probe] {address} {'reachable' if reachable else 'not reachable'}")
    return reachable
