"""
core/probes.py
Protocol probes for service fingerprinting (inspired by nmap-service-probes
NULL, GetRequest, SMBProgNeg and TerminalServer probes).

Every probe has the same shape: ``run(target, port, timeout)`` opens its own
connection, does one exchange, closes the connection on every exit path and
returns the response bytes or None. Probes never raise for network failures.
"""

from __future__ import annotations

import asyncio
import ssl
import sys
from typing import Optional, Tuple

from utils.constants import CLOSE_TIMEOUT_S, READ_BUFFER_SIZE


# ─── Payloads ─────────────────────────────────────────────────────────────────

HTTP_GET = b"GET / HTTP/1.0\r\n\r\n"

GENERIC_NEWLINES = b"\r\n\r\n"

# SMB_COM_NEGOTIATE offering the classic dialect list, wrapped in a
# NetBIOS session header
SMB_DIALECTS: Tuple[str, ...] = (
    "PC NETWORK PROGRAM 1.0",
    "MICROSOFT NETWORKS 1.03",
    "MICROSOFT NETWORKS 3.0",
    "LANMAN1.0",
    "LM1.2X002",
    "SAMBA",
    "NT LANMAN 1.0",
    "NT LM 0.12",
)


def _smb_negotiate() -> bytes:
    dialects = b"".join(b"\x02" + d.encode("ascii") + b"\x00" for d in SMB_DIALECTS)
    header = (
        b"\xffSMB"                 # protocol
        b"\x72"                    # SMB_COM_NEGOTIATE
        b"\x00\x00\x00\x00"        # status
        b"\x18"                    # flags
        b"\x53\xc8"                # flags2
        + b"\x00" * 12             # pid high, signature, reserved
        + b"\x00\x00"              # tid
        + b"\xff\xfe"              # pid
        + b"\x00\x00"              # uid
        + b"\x00\x00"              # mid
    )
    body = b"\x00" + len(dialects).to_bytes(2, "little") + dialects
    msg = header + body
    return b"\x00" + len(msg).to_bytes(3, "big") + msg


SMB_NEGOTIATE = _smb_negotiate()

# TPKT + X.224 Connection Request + RDP_NEG_REQ asking for TLS | CredSSP
RDP_CONNECTION_REQUEST = (
    b"\x03\x00\x00\x13"
    b"\x0e\xe0\x00\x00\x00\x00\x00"
    b"\x01\x00\x08\x00\x03\x00\x00\x00"
)


# ─── TLS context (certificate validation intentionally disabled) ──────────────

def _insecure_context() -> ssl.SSLContext:
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


_TLS_CONTEXT = _insecure_context()


# ─── Stream helpers ───────────────────────────────────────────────────────────

async def read_some(
    reader: asyncio.StreamReader, timeout: float
) -> bytes:
    """Read up to READ_BUFFER_SIZE bytes. b"" on timeout, EOF or error."""
    try:
        return await asyncio.wait_for(reader.read(READ_BUFFER_SIZE), timeout=timeout)
    except (asyncio.TimeoutError, OSError, EOFError):
        return b""


async def close_stream(
    writer: asyncio.StreamWriter, timeout: float = CLOSE_TIMEOUT_S
) -> None:
    """Close ``writer`` within ``timeout``. A TLS peer that never answers
    close_notify gets the transport aborted instead."""
    writer.close()
    try:
        await asyncio.wait_for(writer.wait_closed(), timeout=timeout)
    except asyncio.TimeoutError:
        writer.transport.abort()
    except (OSError, EOFError):
        pass


# ─── Probe variants ───────────────────────────────────────────────────────────

class Probe:
    """Base probe: connect, optionally send ``payload``, read one response."""

    name = "probe"
    tls = False
    payload = b""

    async def run(self, target: str, port: int, timeout: float) -> Optional[bytes]:
        try:
            reader, writer = await asyncio.wait_for(
                self._connect(target, port, timeout), timeout=timeout,
            )
        except (asyncio.TimeoutError, OSError):
            return None

        try:
            if self.payload:
                writer.write(self.payload)
                await asyncio.wait_for(writer.drain(), timeout=timeout)
            data = await read_some(reader, timeout)
        except (asyncio.TimeoutError, OSError):
            return None
        finally:
            await close_stream(writer, timeout)

        return data or None

    async def _connect(self, target: str, port: int, timeout: float):
        return await asyncio.open_connection(target, port)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class PassiveProbe(Probe):
    """Send nothing; wait for the service to speak first (SSH, FTP, SMTP)."""

    name = "passive"


class PayloadProbe(Probe):

    def __init__(self, name: str, payload: bytes):
        self.name = name
        self.payload = payload


class TlsProbe(Probe):
    """Wrap the exchange in TLS, accepting any certificate."""

    tls = True

    def __init__(self, name: str = "tls", payload: bytes = b""):
        self.name = name
        self.payload = payload

    async def _connect(self, target: str, port: int, timeout: float):
        kwargs = {"ssl_handshake_timeout": timeout}
        if sys.version_info >= (3, 11):
            kwargs["ssl_shutdown_timeout"] = timeout
        return await asyncio.open_connection(
            target, port, ssl=_TLS_CONTEXT, **kwargs,
        )


# ─── Probe instances (immutable, shared) ──────────────────────────────────────

PASSIVE       = PassiveProbe()
HTTP_PROBE    = PayloadProbe("http-get", HTTP_GET)
GENERIC_PROBE = PayloadProbe("generic-newline", GENERIC_NEWLINES)
SMB_PROBE     = PayloadProbe("smb-negotiate", SMB_NEGOTIATE)
RDP_PROBE     = PayloadProbe("rdp-connection-request", RDP_CONNECTION_REQUEST)
TLS_HTTP      = TlsProbe("tls-http-get", HTTP_GET)
