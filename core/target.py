"""
core/target.py
Turn the user's target into a connectable IPv4 address before any scanning.
Resolution failure is the only error that aborts a run.
"""

from __future__ import annotations

import asyncio
import ipaddress
import socket

from utils.logger import get_logger
from utils.validators import validate_target

log = get_logger("target")


class TargetResolutionError(ValueError):
    """Raised when the target cannot be resolved to an IPv4 address."""


async def resolve_target(host: str, timeout: float = 5.0) -> str:
    """Return an IPv4 address string for ``host``."""
    ok, err = validate_target(host)
    if not ok:
        raise TargetResolutionError(err)

    host = host.strip()
    try:
        ipaddress.IPv4Address(host)
        return host
    except ValueError:
        pass

    loop = asyncio.get_running_loop()
    try:
        infos = await asyncio.wait_for(
            loop.getaddrinfo(host, None, family=socket.AF_INET,
                             type=socket.SOCK_STREAM),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        raise TargetResolutionError(
            f"Timed out resolving {host!r}"
        ) from exc
    except socket.gaierror as exc:
        raise TargetResolutionError(
            f"Could not resolve {host!r}: {exc.strerror or exc}"
        ) from exc

    if not infos:
        raise TargetResolutionError(f"No IPv4 address found for {host!r}")

    ip = infos[0][4][0]
    log.debug(f"Resolved {host} → {ip}")
    return ip
