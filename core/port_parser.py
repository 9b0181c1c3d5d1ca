"""
core/port_parser.py
Robust port specification parser.

Accepts:
  "80"                 → [80]
  "80,443"             → [80, 443]
  "1-1000"             → [1..1000]
  "22,80-100,443"      → merged & sorted, deduped
  "-"                  → all ports (1-65535)
  None                 → default 1-1024

Rejects:
  "abc", "99999", "0", "100-50", "", beyond-limit ranges
"""

from __future__ import annotations

import re
from typing import List, Optional, Set

from utils.constants import PORT_MIN, PORT_MAX, DEFAULT_PORT_SPEC


# ─── Custom Exceptions ────────────────────────────────────────────────────────

class PortParseError(ValueError):
    """Raised when port specification is invalid."""


# ─── Parser ───────────────────────────────────────────────────────────────────

class PortParser:
    """
    Parse a port specification string into an ordered PortSpec.

    All errors raise PortParseError with a human-readable message.
    No exceptions are ever swallowed silently.
    """

    _SINGLE_RE = re.compile(r"^[0-9]+$")
    _RANGE_RE  = re.compile(r"^([0-9]+)-([0-9]+)$")

    # ── Public API ────────────────────────────────────────────────────────────

    def parse(self, spec: Optional[str] = None) -> List[int]:
        """
        Parse port spec → ascending deduplicated list.

        ``None`` selects the default range. Raises PortParseError on any
        invalid input.
        """
        if spec is None:
            spec = DEFAULT_PORT_SPEC
        if not isinstance(spec, str):
            raise PortParseError(f"Expected string, got {type(spec).__name__}")

        spec = spec.strip()
        if not spec:
            raise PortParseError("Port specification is empty")

        ports: Set[int] = set()
        for part in spec.split(","):
            part = part.strip()
            if not part:
                continue
            if part == "-":
                # Special keyword: all ports
                return list(range(PORT_MIN, PORT_MAX + 1))
            ports.update(self._parse_token(part))

        if not ports:
            raise PortParseError(f"No valid ports parsed from: {spec!r}")

        return sorted(ports)

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _parse_token(self, token: str) -> range | List[int]:
        if self._SINGLE_RE.match(token):
            return [self._validated(int(token))]

        m = self._RANGE_RE.match(token)
        if m:
            start, end = int(m.group(1)), int(m.group(2))
            self._validated(start)
            self._validated(end)
            if start > end:
                raise PortParseError(
                    f"Invalid range {start}-{end}: start > end"
                )
            return range(start, end + 1)

        raise PortParseError(
            f"Invalid port token: {token!r}  "
            f"(expected integer, start-end range or '-')"
        )

    @staticmethod
    def _validated(port: int) -> int:
        if not (PORT_MIN <= port <= PORT_MAX):
            raise PortParseError(
                f"Port {port} out of valid range [{PORT_MIN}, {PORT_MAX}]"
            )
        return port


# ── Module-level convenience ──────────────────────────────────────────────────

_default_parser = PortParser()


def parse_ports(spec: Optional[str] = None) -> List[int]:
    return _default_parser.parse(spec)
