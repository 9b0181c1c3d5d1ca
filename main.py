#!/usr/bin/env python3
"""
PortDog v1.0 — Async Port Scanner with Adaptive Timing & Fingerprinting
main.py — CLI entry point

Usage:
  python3 main.py 192.168.1.1
  python3 main.py 192.168.1.1 -p 22,80,443 -T4
  python3 main.py 192.168.1.1 -p - -T insane --json
  python3 main.py scanme.example.org -p 1-1000 --show-closed
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Optional

# Try uvloop for 2-4× speed on Linux/macOS
try:
    import uvloop
    asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
except ImportError:
    pass

import yaml
from rich.console import Console
from rich.progress import (
    BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn,
    TimeElapsedColumn, TimeRemainingColumn,
)
from rich.table import Table

from core.cancel import CancelToken
from core.pipeline import run_scan
from core.port_parser import PortParser, PortParseError
from core.progress import ProgressChannel
from core.results import ScanResult, ServiceIdentification
from core.target import TargetResolutionError
from core.timing import get_timing
from utils.constants import CALIBRATION_PORTS, DEFAULT_PORT_SPEC, PortState
from utils.logger import get_logger, set_level
from utils.validators import sanitize_banner, validate_port

__version__ = "1.0.0"

log = get_logger("portdog")

BANNER = r"""
  ╔═══════════════════════════════════════════════╗
  ║   ___         _     ___                       ║
  ║  | _ \___ _ _| |_  |   \ ___  __ _            ║
  ║  |  _/ _ \ '_|  _| | |) / _ \/ _` |           ║
  ║  |_| \___/_|  \__| |___/\___/\__, |           ║
  ║                              |___/            ║
  ║  v1.0  ·  Adaptive Timing  ·  Fingerprinting  ║
  ╚═══════════════════════════════════════════════╝"""

DEFAULT_CONFIG = "portdog.yaml"

_STATE_STYLE = {
    PortState.OPEN:     "green",
    PortState.CLOSED:   "red",
    PortState.FILTERED: "yellow",
}


class ConfigError(Exception):
    """Raised when the configuration file cannot be parsed or holds bad values."""


def _load_config(path: str) -> dict:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _validate_config(cfg: dict) -> None:
    """Reject config values whose type the scanner cannot use."""
    for key in ("ports", "timing"):
        value = cfg.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, (str, int))):
            raise ConfigError(f"Config key '{key}' must be a string or an integer")

    for key in ("fingerprint", "show_closed"):
        if key in cfg and not isinstance(cfg[key], bool):
            raise ConfigError(f"Config key '{key}' must be true or false")

    if "calibration_ports" in cfg:
        ports = cfg["calibration_ports"]
        if not isinstance(ports, list):
            raise ConfigError("Config key 'calibration_ports' must be a list of ports")
        for port in ports:
            ok, msg = validate_port(port)
            if not ok:
                raise ConfigError(f"Config key 'calibration_ports': {msg}")


def _merge_settings(args: argparse.Namespace, cfg: dict) -> dict:
    """Command-line flags win over the config file, which wins over defaults."""
    _validate_config(cfg)

    def pick(flag, key, default):
        return flag if flag is not None else cfg.get(key, default)

    return {
        "ports":             str(pick(args.ports, "ports", DEFAULT_PORT_SPEC)),
        "timing":            pick(args.timing, "timing", 3),
        "fingerprint":       (not args.no_fingerprint) and cfg.get("fingerprint", True),
        "show_closed":       args.show_closed or cfg.get("show_closed", False),
        "calibration_ports": tuple(cfg.get("calibration_ports", CALIBRATION_PORTS)),
    }


# ─── Progress rendering ───────────────────────────────────────────────────────

async def _render_progress(channel: ProgressChannel, total: int, console: Console) -> None:
    with Progress(
        SpinnerColumn(style="green"),
        TimeElapsedColumn(),
        BarColumn(bar_width=40, complete_style="cyan", finished_style="green"),
        MofNCompleteColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TextColumn("ETA"),
        TimeRemainingColumn(),
        console=console,
        transient=False,
    ) as bar:
        task = bar.add_task("scan", total=total)
        async for event in channel:
            bar.update(task, completed=event.completed_count)


# ─── Core scan runner ─────────────────────────────────────────────────────────

async def _run_scan(target: str, ports: list, settings: dict, show_progress: bool) -> ScanResult:
    """Run one scan with SIGINT wired to the cancel token."""
    cancel = CancelToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.cancel, "interrupted by user")
    except (NotImplementedError, RuntimeError):
        pass  # not supported on this platform / thread

    channel: Optional[ProgressChannel] = None
    renderer: Optional[asyncio.Task] = None
    if show_progress:
        channel = ProgressChannel()
        renderer = asyncio.create_task(
            _render_progress(channel, len(ports), Console(stderr=True))
        )

    try:
        return await run_scan(
            target, ports,
            template=settings["timing"],
            progress=channel,
            cancel=cancel,
            fingerprint=settings["fingerprint"],
            sample_ports=settings["calibration_ports"],
        )
    finally:
        if channel is not None:
            channel.close()
            await renderer
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


# ─── Output ───────────────────────────────────────────────────────────────────

def _service_label(ident: Optional[ServiceIdentification]) -> str:
    if ident is None:
        return ""
    if ident.port_hint:
        return f"{ident.display_name} ({ident.port_hint}?)"
    return ident.display_name


def print_results(result: ScanResult, show_closed: bool, console: Console) -> None:
    stats = result.stats()
    console.print()
    console.rule(f"[bold]{result.target}[/bold]")

    records = result.records if show_closed else result.open_ports()
    if not records:
        console.print("No open ports found.")
    else:
        table = Table(show_edge=False, header_style="bold")
        table.add_column("PORT", style="yellow", no_wrap=True)
        table.add_column("STATE", no_wrap=True)
        table.add_column("SERVICE", style="blue")
        table.add_column("VERSION")
        table.add_column("BANNER", overflow="ellipsis", no_wrap=True, max_width=60)
        for r in records:
            ident = r.identification
            state = r.state
            table.add_row(
                f"{r.port}/tcp",
                f"[{_STATE_STYLE[state]}]{state.value}[/]",
                _service_label(ident),
                " ".join(filter(None, [ident.product, ident.version_string])) if ident else "",
                sanitize_banner(ident.banner_text or "", max_length=200) if ident else "",
            )
        console.print(table)

    console.print()
    console.print(
        f"  Open: [green]{stats.ports_open}[/]  "
        f"Closed: [red]{stats.ports_closed}[/]  "
        f"Filtered: [yellow]{stats.ports_filtered}[/]  "
        f"Duration: {stats.elapsed_s:.2f}s  "
        f"Rate: {stats.rate_per_s:.0f} ports/sec"
    )
    if not result.complete:
        console.print("  [bold yellow]Partial results: scan was interrupted[/]")


# ─── CLI ─────────────────────────────────────────────────────────────────────

def build_cli() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="portdog",
        description="PortDog — async TCP port scanner with adaptive timing "
                    "and service fingerprinting",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Port specs:   80  |  80,443  |  1-1000  |  22,80-90,443  |  - (all)
Timing:       0 paranoid  1 sneaky  2 polite
              3 normal    4 aggressive (auto)   5 insane (auto)

Examples:
  %(prog)s 192.168.1.1
  %(prog)s 192.168.1.1 -p 22,80,443 -T4
  %(prog)s 192.168.1.1 -p - -T5 --json
""",
    )
    ap.add_argument("target",            help="IPv4 address or hostname")
    ap.add_argument("-p", "--ports",     metavar="SPEC", default=None,
                    help=f"Port spec (default: {DEFAULT_PORT_SPEC})")
    ap.add_argument("-T", "--timing",    metavar="TEMPLATE", default=None,
                    help="Timing template 0-5 or name (default: 3)")
    ap.add_argument("-j", "--json",      action="store_true",
                    help="Print results as JSON, suppressing all other output")
    ap.add_argument("--no-fingerprint",  action="store_true",
                    help="Only report port states")
    ap.add_argument("--show-closed",     action="store_true",
                    help="Also list closed and filtered ports")
    ap.add_argument("--config",          default=DEFAULT_CONFIG, metavar="FILE")
    ap.add_argument("--quiet",           action="store_true", help="Suppress progress output")
    ap.add_argument("--no-logo",         action="store_true", help="Hide ASCII banner")
    ap.add_argument("-v", "--verbose",   action="store_true", help="Debug logging")
    ap.add_argument("--version",         action="version", version=f"PortDog {__version__}")
    return ap


def main(argv: Optional[list] = None) -> None:
    ap   = build_cli()
    args = ap.parse_args(argv)

    if args.json or args.quiet:
        set_level(logging.WARNING)
    elif args.verbose:
        set_level(logging.DEBUG)

    try:
        cfg      = _load_config(args.config)
        settings = _merge_settings(args, cfg)
        ports    = PortParser().parse(settings["ports"])
        profile  = get_timing(settings["timing"])
    except (ConfigError, PortParseError, ValueError) as exc:
        log.error(str(exc))
        sys.exit(1)

    if not (args.no_logo or args.json):
        print(BANNER)
        log.info(f"Target   : {args.target}")
        log.info(f"Ports    : {len(ports)}  ({settings['ports']})")
        log.info(f"Timing   : {profile.name}")

    show_progress = not (args.json or args.quiet)
    try:
        result = asyncio.run(_run_scan(args.target, ports, {**settings, "timing": profile},
                                       show_progress))
    except TargetResolutionError as exc:
        log.error(f"Cannot scan target: {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n  [!] Interrupted by user")
        sys.exit(0)
    except Exception as exc:
        log.exception(f"Fatal error: {exc}")
        sys.exit(1)

    if args.json:
        print(json.dumps(result.to_dict(include_closed=settings["show_closed"]), indent=2))
    else:
        print_results(result, settings["show_closed"], Console())


if __name__ == "__main__":
    main()
