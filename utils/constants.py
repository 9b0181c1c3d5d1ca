"""
PortDog Constants & Enums
Port states, timing templates (mirrors nmap -T0 to -T5) and probe tables.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Optional, Tuple


# ─── Port States ──────────────────────────────────────────────────────────────
class PortState(str, Enum):
    OPEN      = "open"       # TCP handshake completed
    CLOSED    = "closed"     # actively refused (RST)
    FILTERED  = "filtered"   # no answer within timeout, or other failure


# ─── Timing Templates ─────────────────────────────────────────────────────────
@dataclass(frozen=True)
class TimingProfile:
    """Static half of a timing template. Adaptive fields only apply when
    ``adaptive`` is set and a latency measurement is available."""
    name: str
    level: int
    concurrency: int               # static concurrency ceiling
    connect_timeout_ms: float      # static timeout, also the adaptive ceiling
    probe_timeout_ms: float        # per fingerprint stage
    adaptive: bool = False
    rtt_multiplier: float = 1.0
    rtt_margin_ms: float = 0.0
    min_timeout_ms: float = 0.0
    # ((rtt_below_ms, concurrency), ...) evaluated in order; last entry wins
    concurrency_bands: Optional[Tuple[Tuple[float, int], ...]] = None


TIMING_PROFILES = {
    "paranoid":   TimingProfile("T0-Paranoid",   0, concurrency=5,
                                connect_timeout_ms=15000, probe_timeout_ms=8000),

    "sneaky":     TimingProfile("T1-Sneaky",     1, concurrency=100,
                                connect_timeout_ms=5000,  probe_timeout_ms=6000),

    "polite":     TimingProfile("T2-Polite",     2, concurrency=400,
                                connect_timeout_ms=1200,  probe_timeout_ms=5000),

    "normal":     TimingProfile("T3-Normal",     3, concurrency=1000,
                                connect_timeout_ms=800,   probe_timeout_ms=4000),

    "aggressive": TimingProfile("T4-Aggressive", 4, concurrency=1000,
                                connect_timeout_ms=800,   probe_timeout_ms=3000,
                                adaptive=True, rtt_multiplier=5.0,
                                rtt_margin_ms=100, min_timeout_ms=100,
                                concurrency_bands=((100, 2500), (250, 1800),
                                                   (float("inf"), 1000))),

    "insane":     TimingProfile("T5-Insane",     5, concurrency=5000,
                                connect_timeout_ms=300,   probe_timeout_ms=2000,
                                adaptive=True, rtt_multiplier=1.5,
                                rtt_margin_ms=25, min_timeout_ms=50),
}

TIMING_BY_LEVEL = {p.level: p for p in TIMING_PROFILES.values()}

DEFAULT_TIMING = "normal"

# ─── Calibration ──────────────────────────────────────────────────────────────
CALIBRATION_PORTS      = (80, 443, 22, 53, 3389, 8080, 1337, 31337)
CALIBRATION_TIMEOUT_S  = 2.0

# Descriptors kept free for stdio, logging and the event loop itself
FD_HEADROOM = 50

# ─── Port Parser Limits ───────────────────────────────────────────────────────
PORT_MIN          = 1
PORT_MAX          = 65535
DEFAULT_PORT_SPEC = "1-1024"

# ─── Fingerprinting ───────────────────────────────────────────────────────────
READ_BUFFER_SIZE = 2048
CLOSE_TIMEOUT_S  = 1.0
MAX_HEX_BYTES    = 24
UNRESPONSIVE     = "unresponsive"
UNKNOWN_SERVICE  = "unknown"

TLS_PORTS   = frozenset({443, 465, 636, 993, 995, 4443, 8443, 9443})
HTTP_PORTS  = frozenset({80, 8000, 8008, 8080, 8888, 9993})
SMB_PORTS   = frozenset({139, 445})
RDP_PORTS   = frozenset({3389})

# Conventional assignments, shown as a hint next to unidentified services
WELL_KNOWN_SERVICES = {
    21: "ftp", 22: "ssh", 23: "telnet", 25: "smtp", 53: "dns",
    80: "http", 110: "pop3", 139: "netbios-ssn", 143: "imap", 443: "https",
    445: "microsoft-ds", 993: "imaps", 995: "pop3s", 1433: "mssql",
    3306: "mysql", 3389: "ms-wbt-server", 5432: "postgresql",
    6379: "redis", 27017: "mongodb",
}

# ─── Layering Contract (hard import rules - enforced by tests) ───────────────
# core  → may import: utils
# utils → may import: nothing project-local
# main  → may import: core, utils, rich, yaml
# NEVER: core imports main, rich or yaml
