"""
core/timing.py
Timing policy: timing template + measured RTT → TimingParameters.

Adaptive templates (T4, T5) clamp the connect timeout to the measured RTT:

  timeout = clamp(RTT * multiplier + margin, min_timeout, template_timeout)

The template's static timeout doubles as the ceiling, so a slow calibration
can never make an aggressive template wait longer than a gentler one, and
the floor keeps a suspiciously fast calibration from producing a timeout no
real handshake can meet. Without a measurement the static defaults apply.
"""

from __future__ import annotations

from typing import Optional, Union

from core.results import TimingParameters
from utils.constants import (
    DEFAULT_TIMING, FD_HEADROOM, TIMING_BY_LEVEL, TIMING_PROFILES, TimingProfile,
)
from utils.logger import get_logger

try:
    import resource
except ImportError:          # not available on Windows
    resource = None

log = get_logger("timing")


# ─── Profile lookup ───────────────────────────────────────────────────────────

def get_timing(name: Union[str, int] = DEFAULT_TIMING) -> TimingProfile:
    """
    Get a timing profile by name or level.
    Accepts: paranoid, sneaky, polite, normal, aggressive, insane,
             T0 .. T5 shorthand, or the bare level 0 .. 5.
    """
    if isinstance(name, int) and not isinstance(name, bool):
        if name in TIMING_BY_LEVEL:
            return TIMING_BY_LEVEL[name]
        raise ValueError(f"Timing template must be 0-5, got {name}")

    key = str(name).strip().lower()
    if key.isdigit():
        return get_timing(int(key))
    # Map T0-T5 shorthand
    if len(key) == 2 and key[0] == "t" and key[1].isdigit():
        return get_timing(int(key[1]))
    if key not in TIMING_PROFILES:
        raise ValueError(
            f"Unknown timing profile {name!r}. "
            f"Choose from: {list(TIMING_PROFILES)} or 0-5"
        )
    return TIMING_PROFILES[key]


# ─── Descriptor budget ────────────────────────────────────────────────────────

def descriptor_limit() -> Optional[int]:
    """Soft RLIMIT_NOFILE, or None where the platform doesn't expose it."""
    if resource is None:
        return None
    try:
        soft, _ = resource.getrlimit(resource.RLIMIT_NOFILE)
    except (OSError, ValueError):
        return None
    if soft == resource.RLIM_INFINITY:
        return None
    return soft


# ─── Policy ───────────────────────────────────────────────────────────────────

def derive(
    template: Union[int, str, TimingProfile],
    measured_rtt: Optional[float],
    fd_limit: Optional[int] = -1,
) -> TimingParameters:
    """
    Derive run parameters from a template and the calibration RTT.

    Args:
        template: Template level 0-5, a profile name, or a TimingProfile
        measured_rtt: Mean RTT in seconds, or None when calibration failed
        fd_limit: Descriptor limit to respect; -1 queries the OS,
                  None disables the cap

    Returns:
        Immutable TimingParameters for the whole run
    """
    profile = template if isinstance(template, TimingProfile) else get_timing(template)

    concurrency = profile.concurrency
    timeout_ms  = profile.connect_timeout_ms
    adaptive    = profile.adaptive and measured_rtt is not None

    if adaptive:
        rtt_ms = measured_rtt * 1000.0
        raw = rtt_ms * profile.rtt_multiplier + profile.rtt_margin_ms
        timeout_ms = max(profile.min_timeout_ms,
                         min(raw, profile.connect_timeout_ms))
        if profile.concurrency_bands:
            for below_ms, value in profile.concurrency_bands:
                if rtt_ms < below_ms:
                    concurrency = value
                    break
    elif profile.adaptive:
        log.warning(
            "Target did not answer calibration probes; "
            f"using {profile.name} static defaults"
        )

    if fd_limit == -1:
        fd_limit = descriptor_limit()
    if fd_limit is not None:
        safe = max(1, fd_limit - FD_HEADROOM)
        if concurrency > safe:
            log.warning(
                f"Capping concurrency at {safe} to respect "
                f"file descriptor limit ({fd_limit})"
            )
            concurrency = safe

    params = TimingParameters(
        concurrency_limit = concurrency,
        connect_timeout   = timeout_ms / 1000.0,
        probe_timeout     = profile.probe_timeout_ms / 1000.0,
        template          = profile.level,
        measured_rtt      = measured_rtt,
        adaptive          = adaptive,
    )
    log.debug(f"{profile.name}: {params}")
    return params
