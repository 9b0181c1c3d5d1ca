"""
utils/validators.py
Input validation and sanitization functions
"""

import ipaddress
import re
from typing import Tuple

# RFC 1123 hostname label
_HOST_LABEL_RE = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def validate_target(target: str) -> Tuple[bool, str]:
    """
    Validate that target is an IPv4 address or a hostname.

    Args:
        target: IPv4 address (e.g. "192.168.1.1") or hostname ("example.com")

    Returns:
        (is_valid, error_message) tuple
    """
    if not target or not isinstance(target, str):
        return (False, "Target must be a non-empty string")

    target = target.strip()

    try:
        addr = ipaddress.ip_address(target)
    except ValueError:
        pass
    else:
        if addr.version != 4:
            return (False, f"IPv6 targets are not supported: {target}")
        return (True, "")

    if "/" in target:
        return (False, f"Subnets are not supported, scan one host: {target}")

    hostname = target.rstrip(".")
    if len(hostname) > 253 or not all(
        _HOST_LABEL_RE.match(label) for label in hostname.split(".")
    ):
        return (False, f"Invalid IP address or hostname: {target}")
    if hostname.replace(".", "").isdigit():
        return (False, f"Invalid IPv4 address: {target}")

    return (True, "")


def validate_port(port: int) -> Tuple[bool, str]:
    """
    Validate that port number is in valid range [1-65535].

    Args:
        port: Port number to validate

    Returns:
        (is_valid, error_message) tuple
    """
    if not isinstance(port, int) or isinstance(port, bool):
        return (False, "Port must be an integer")

    if port < 1 or port > 65535:
        return (False, f"Port {port} out of valid range [1-65535]")

    return (True, "")


def sanitize_banner(banner: str, max_length: int = 500) -> str:
    """
    Sanitize a service banner for single-line display by:
    - Removing control characters except newlines/tabs
    - Truncating to max_length
    - Collapsing all whitespace (including CR/LF) into single spaces

    Args:
        banner: Raw banner string
        max_length: Maximum allowed length (default: 500)

    Returns:
        Sanitized banner string
    """
    if not banner or not isinstance(banner, str):
        return ""

    # Remove control characters except \n, \r, \t
    sanitized = re.sub(r'[\x00-\x08\x0b-\x0c\x0e-\x1f\x7f-\x9f]', '', banner)

    # Truncate
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."

    # Strip and collapse multiple spaces
    sanitized = ' '.join(sanitized.split())

    return sanitized


__all__ = ["validate_target", "validate_port", "sanitize_banner"]
