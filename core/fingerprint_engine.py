"""
core/fingerprint_engine.py
Staged active fingerprinting of open ports.

Stage plan per port (first stage that yields usable text wins):

  conventional TLS ports   tls-http → passive → http-get
  SMB (139, 445)           passive → smb-negotiate
  RDP (3389)               passive → rdp-connection-request
  HTTP ports               passive → http-get → tls-http
  everything else          passive → generic-newline → http-get → tls-http

Responses are turned into banner text here (structured SMB / RDP / MySQL
greetings are decoded into a short description, anything else is UTF-8 or
a hex dump); naming the service is left to the SignatureMatcher.
"""

from __future__ import annotations

import dataclasses
from typing import List, Optional

from core.cancel import CancelToken
from core.probes import (
    GENERIC_PROBE, HTTP_PROBE, PASSIVE, RDP_PROBE, SMB_DIALECTS, SMB_PROBE,
    TLS_HTTP, Probe,
)
from core.results import ServiceIdentification
from core.signatures import SignatureMatcher
from utils.constants import (
    HTTP_PORTS, MAX_HEX_BYTES, RDP_PORTS, SMB_PORTS, TLS_PORTS,
    UNKNOWN_SERVICE, UNRESPONSIVE, WELL_KNOWN_SERVICES,
)
from utils.logger import get_logger

log = get_logger("fingerprint")


# ─── Stage selection ──────────────────────────────────────────────────────────

def plan_for_port(port: int, passive_done: bool = False) -> List[Probe]:
    """Ordered probes for ``port``. ``passive_done`` drops the passive stage
    because the scan engine already listened on this port."""
    if port in TLS_PORTS:
        plan = [TLS_HTTP, PASSIVE, HTTP_PROBE]
    elif port in SMB_PORTS:
        plan = [PASSIVE, SMB_PROBE]
    elif port in RDP_PORTS:
        plan = [PASSIVE, RDP_PROBE]
    elif port in HTTP_PORTS:
        plan = [PASSIVE, HTTP_PROBE, TLS_HTTP]
    else:
        plan = [PASSIVE, GENERIC_PROBE, HTTP_PROBE, TLS_HTTP]

    if passive_done:
        plan = [p for p in plan if p is not PASSIVE]
    return plan


# ─── Response decoding ────────────────────────────────────────────────────────

_SMB2_DIALECTS = {
    0x0202: "2.0.2", 0x0210: "2.1", 0x02FF: "2.x",
    0x0300: "3.0", 0x0302: "3.0.2", 0x0311: "3.1.1",
}

_RDP_PROTOCOLS = {
    0: "Standard RDP", 1: "TLS", 2: "CredSSP", 4: "RDSTLS", 8: "CredSSP (early auth)",
}


def to_hex_string(data: bytes) -> str:
    text = " ".join(f"{b:02X}" for b in data[:MAX_HEX_BYTES])
    if len(data) > MAX_HEX_BYTES:
        text += " ..."
    return text


def _decode_smb(data: bytes) -> Optional[str]:
    if len(data) < 8 or data[0] != 0x00:
        return None

    if data[4:8] == b"\xffSMB":
        # NetBIOS header (4) + SMB header (32) + WordCount (1) + DialectIndex (2)
        if len(data) < 39 or data[36] == 0:
            return "SMB1 negotiate response; dialect none"
        idx = int.from_bytes(data[37:39], "little")
        dialect = SMB_DIALECTS[idx] if idx < len(SMB_DIALECTS) else "none"
        return f"SMB1 negotiate response; dialect {dialect}"

    if data[4:8] == b"\xfeSMB":
        # NetBIOS header (4) + SMB2 header (64) + StructureSize (2) + SecurityMode (2)
        if len(data) < 74:
            return "SMB2 negotiate response; dialect unknown"
        rev = int.from_bytes(data[72:74], "little")
        return f"SMB2 negotiate response; dialect {_SMB2_DIALECTS.get(rev, hex(rev))}"

    return None


def _decode_rdp(data: bytes) -> Optional[str]:
    # TPKT version 3 + X.224 Connection Confirm (0xD0)
    if len(data) < 11 or data[0] != 0x03 or data[1] != 0x00 or data[5] & 0xF0 != 0xD0:
        return None
    text = "RDP connection confirm"
    if len(data) >= 19:
        kind = data[11]
        value = int.from_bytes(data[15:19], "little")
        if kind == 0x02:
            text += f"; security {_RDP_PROTOCOLS.get(value, hex(value))}"
        elif kind == 0x03:
            text += f"; negotiation failure code {value}"
    return text


def _decode_mysql(data: bytes) -> Optional[str]:
    # 3-byte length, sequence 0, protocol 10, NUL-terminated version string
    if len(data) < 6 or data[3] != 0x00 or data[4] != 0x0A:
        return None
    if int.from_bytes(data[0:3], "little") > len(data) - 4:
        return None
    end = data.find(b"\x00", 5)
    if end <= 5:
        return None
    version = data[5:end]
    if not all(0x20 < b < 0x7F for b in version):
        return None
    return f"MySQL protocol 10; server version {version.decode('ascii')}"


def describe_response(data: bytes) -> Optional[str]:
    """Banner text for raw response bytes; None when nothing usable."""
    if not data:
        return None

    for decoder in (_decode_smb, _decode_rdp, _decode_mysql):
        text = decoder(data)
        if text:
            return text

    try:
        text = data.decode("utf-8").strip()
    except UnicodeDecodeError:
        return f"[Binary data: {len(data)} bytes] {to_hex_string(data)}"

    if "\x00" in text:
        return f"[Binary data: {len(data)} bytes] {to_hex_string(data)}"
    return text or None


# ─── Fingerprint Engine ───────────────────────────────────────────────────────

class FingerprintEngine:
    """
    Identify the service behind one open port.

    Unresponsive services are an expected outcome, not an error: they come
    back as service "unknown" with banner text "unresponsive".
    An unknown service on a well-known port also carries that port's
    conventional service name as a display hint.
    """

    def __init__(
        self,
        probe_timeout: float,
        matcher: Optional[SignatureMatcher] = None,
        cancel: Optional[CancelToken] = None,
    ):
        self.probe_timeout = probe_timeout
        self.matcher = matcher or SignatureMatcher()
        self.cancel = cancel or CancelToken()

    async def identify(
        self, target: str, port: int, raw_response: Optional[bytes] = None
    ) -> ServiceIdentification:
        """
        Run the stage plan for ``port``.

        Raises ScanCancelled if the run is cancelled before a stage starts.
        """
        if raw_response:
            text = describe_response(raw_response)
            if text:
                return self._identified(text, port, "passive", tls=False)

        for probe in plan_for_port(port, passive_done=raw_response is not None):
            self.cancel.raise_if_cancelled()
            data = await probe.run(target, port, self.probe_timeout)
            text = describe_response(data) if data else None
            if text:
                return self._identified(text, port, probe.name, tls=probe.tls)
            log.debug(f"{target}:{port} no answer to {probe.name}")

        log.debug(f"{target}:{port} unresponsive to every stage")
        return ServiceIdentification(
            service_name=UNKNOWN_SERVICE,
            version_string=None,
            banner_text=UNRESPONSIVE,
            port_hint=WELL_KNOWN_SERVICES.get(port),
        )

    def _identified(
        self, text: str, port: int, stage: str, tls: bool
    ) -> ServiceIdentification:
        ident = self.matcher.identify(text)
        changes = {}
        if tls:
            changes["tls"] = True
        if ident.service_name == UNKNOWN_SERVICE:
            changes["port_hint"] = WELL_KNOWN_SERVICES.get(port)
        if changes:
            ident = dataclasses.replace(ident, **changes)
        log.debug(f"port {port}: {stage} → {ident}")
        return ident
