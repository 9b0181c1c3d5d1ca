"""
core/signatures.py
Service version detection via banner regex matching.
Rule format inspired by nmap-service-probes:

  match <svc> m|<regex>| p/<product>/ v/<version>/

Rules live in one ordered, immutable tuple. Evaluation always walks it
front to back and the first match wins, so identical text always yields
the identical (service, version) pair.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from core.results import ServiceIdentification
from utils.constants import UNKNOWN_SERVICE

_GROUP_REF = re.compile(r"\{(\d+)\}")


def _expand(template: Optional[str], m: re.Match) -> Optional[str]:
    """Substitute {n} capture groups; empty output means "absent"."""
    if not template:
        return None

    def group(ref: re.Match) -> str:
        idx = int(ref.group(1))
        if idx > (m.re.groups or 0):
            return ""
        return (m.group(idx) or "").strip()

    value = _GROUP_REF.sub(group, template)
    # Clean up separators left by empty groups
    value = re.sub(r"/+$", "", value).strip()
    return value or None


@dataclass(frozen=True)
class SignatureRule:
    pattern: re.Pattern
    service: str
    version: Optional[str] = None      # e.g. "{1}"
    product: Optional[str] = None      # e.g. "OpenSSH" or "{2}"

    def apply(self, text: str) -> Optional[Tuple[str, Optional[str], Optional[str]]]:
        m = self.pattern.search(text)
        if not m:
            return None
        return self.service, _expand(self.version, m), _expand(self.product, m)


def rule(regex: str, service: str, version: Optional[str] = None,
         product: Optional[str] = None, flags: int = 0) -> SignatureRule:
    return SignatureRule(re.compile(regex, flags), service, version, product)


# ─── Built-in rules (priority order) ──────────────────────────────────────────

BUILTIN_RULES: Tuple[SignatureRule, ...] = (
    # SSH
    rule(r"\ASSH-[\d.]+-OpenSSH_([\w.]+)", "ssh", "{1}", "OpenSSH"),
    rule(r"\ASSH-[\d.]+-dropbear_([\w.]+)", "ssh", "{1}", "Dropbear sshd"),
    rule(r"\ASSH-[\d.]+-(\S+)", "ssh", "{1}"),

    # HTTP
    rule(r"\AHTTP/\d(?:\.\d)?\s+\d{3}[\s\S]*?^Server:[ \t]*(([A-Za-z][\w.-]*)[^\r\n]*)",
         "http", "{1}", "{2}", re.I | re.M),
    rule(r"\AHTTP/\d(?:\.\d)?\s+\d{3}", "http"),

    # FTP / SMTP with a recognisable product
    rule(r"\A220[ -][^\r\n]*?\b(vsFTPd|ProFTPD|Pure-FTPd|FileZilla Server)[ /v]*([\d.]*\d)?",
         "ftp", "{2}", "{1}", re.I),
    rule(r"\A220[ -][^\r\n]*?\b(Postfix|Sendmail|Exim|Microsoft ESMTP MAIL Service)[ /]*([\d.]*\d)?",
         "smtp", "{2}", "{1}", re.I),
    rule(r"\A220[ -][^\r\n]*FTP", "ftp", flags=re.I),
    rule(r"\A220[ -][^\r\n]*(?:E?SMTP|mail)", "smtp", flags=re.I),

    # POP3 / IMAP
    rule(r"\A\+OK[^\r\n]*Dovecot", "pop3", product="Dovecot pop3d"),
    rule(r"\A\+OK", "pop3"),
    rule(r"\A\* OK[^\r\n]*Dovecot", "imap", product="Dovecot imapd"),
    rule(r"\A\* OK[^\r\n]*IMAP", "imap", flags=re.I),

    # Databases (greeting text produced by the fingerprint engine)
    rule(r"\AMySQL protocol \d+; server version (?:5\.5\.5-)?([\d.]+)-MariaDB",
         "mysql", "{1}", "MariaDB"),
    rule(r"\AMySQL protocol \d+; server version ([\w.-]+)", "mysql", "{1}", "MySQL"),

    # Windows services (structured responses decoded to text)
    rule(r"\ASMB(\d) negotiate response; dialect ([^\r\n;]+)", "smb", "{2}", "SMBv{1}"),
    rule(r"\ARDP connection confirm", "ms-wbt-server",
         product="Microsoft Terminal Services"),

    # VNC
    rule(r"\ARFB (\d{3}\.\d{3})", "vnc", "{1}"),

    # Telnet option negotiation (IAC WILL/WONT/DO/DONT)
    rule(r"\A\[Binary data: \d+ bytes\] FF F[B-E]", "telnet"),
)


# ─── Signature Matcher ────────────────────────────────────────────────────────

class SignatureMatcher:
    """
    Match banner text against service patterns to extract version info.
    """

    def __init__(self, rules: Iterable[SignatureRule] = BUILTIN_RULES):
        self._rules: Tuple[SignatureRule, ...] = tuple(rules)

    @property
    def rules(self) -> Tuple[SignatureRule, ...]:
        return self._rules

    def match(self, text: Optional[str]) -> Tuple[str, Optional[str]]:
        """Return (service_name, version_string or None)."""
        service, version, _ = self._first_match(text)
        return service, version

    def identify(self, text: Optional[str]) -> ServiceIdentification:
        """Like match() but keeps the product and the banner text."""
        service, version, product = self._first_match(text)
        return ServiceIdentification(
            service_name=service,
            version_string=version,
            banner_text=text,
            product=product,
        )

    def _first_match(
        self, text: Optional[str]
    ) -> Tuple[str, Optional[str], Optional[str]]:
        if text:
            for r in self._rules:
                hit = r.apply(text)
                if hit:
                    return hit
        return UNKNOWN_SERVICE, None, None
