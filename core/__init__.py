"""
PortDog Core — Public API

from core import run_scan, parse_ports, derive
"""
from core.port_parser        import PortParser, parse_ports, PortParseError
from core.timing             import get_timing, derive
from core.latency            import LatencyProber
from core.target             import resolve_target, TargetResolutionError
from core.cancel             import CancelToken, ScanCancelled
from core.progress           import ProgressSink, ProgressChannel, CallbackSink, NullSink
from core.results            import (
    TimingParameters, PortOutcome, ServiceIdentification, PortRecord,
    ProgressEvent, ScanResult, ScanStats,
)
from core.scanner_engine     import ScanEngine
from core.fingerprint_engine import FingerprintEngine, describe_response
from core.signatures         import SignatureMatcher, SignatureRule, BUILTIN_RULES
from core.pipeline           import run_scan, identify_open_ports

__all__ = [
    "run_scan", "identify_open_ports",
    "ScanEngine", "FingerprintEngine", "describe_response",
    "SignatureMatcher", "SignatureRule", "BUILTIN_RULES",
    "PortParser", "parse_ports", "PortParseError",
    "get_timing", "derive",
    "LatencyProber",
    "resolve_target", "TargetResolutionError",
    "CancelToken", "ScanCancelled",
    "ProgressSink", "ProgressChannel", "CallbackSink", "NullSink",
    "TimingParameters", "PortOutcome", "ServiceIdentification", "PortRecord",
    "ProgressEvent", "ScanResult", "ScanStats",
]
