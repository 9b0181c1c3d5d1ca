"""
tests/test_signatures.py
Unit tests for banner → (service, version) matching.
Run: pytest tests/test_signatures.py -v
"""

import sys
import os
import re
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from core.signatures import BUILTIN_RULES, SignatureMatcher, SignatureRule, rule


class TestSignatureMatcher:

    def setup_method(self):
        self.m = SignatureMatcher()

    def test_openssh(self):
        assert self.m.match("SSH-2.0-OpenSSH_6.6.1") == ("ssh", "6.6.1")

    def test_openssh_product(self):
        ident = self.m.identify("SSH-2.0-OpenSSH_8.9p1 Ubuntu-3ubuntu0.6")
        assert ident.service_name == "ssh"
        assert ident.version_string == "8.9p1"
        assert ident.product == "OpenSSH"
        assert ident.banner_text == "SSH-2.0-OpenSSH_8.9p1 Ubuntu-3ubuntu0.6"

    def test_other_ssh(self):
        assert self.m.match("SSH-2.0-libssh_0.9.6") == ("ssh", "libssh_0.9.6")

    def test_nginx_server_header(self):
        banner = "HTTP/1.1 200 OK\r\nServer: nginx/1.4.6\r\nContent-Length: 0"
        assert self.m.match(banner) == ("http", "nginx/1.4.6")
        assert self.m.identify(banner).product == "nginx"

    def test_apache_server_header(self):
        banner = "HTTP/1.1 404 Not Found\r\nDate: x\r\nServer: Apache/2.4.41 (Ubuntu)\r\n"
        service, version = self.m.match(banner)
        assert service == "http"
        assert version == "Apache/2.4.41 (Ubuntu)"

    def test_http_without_server_header(self):
        assert self.m.match("HTTP/1.0 200 OK\r\nContent-Type: text/html") == ("http", None)

    def test_vsftpd(self):
        ident = self.m.identify("220 (vsFTPd 3.0.3)")
        assert ident.service_name == "ftp"
        assert ident.product == "vsFTPd"
        assert ident.version_string == "3.0.3"

    def test_generic_ftp(self):
        assert self.m.match("220 Welcome to the FTP server") == ("ftp", None)

    def test_postfix(self):
        ident = self.m.identify("220 mail.example.com ESMTP Postfix (Ubuntu)")
        assert ident.service_name == "smtp"
        assert ident.product == "Postfix"
        assert ident.version_string is None

    def test_pop3_and_imap(self):
        assert self.m.match("+OK Dovecot ready.")[0] == "pop3"
        assert self.m.match("* OK [CAPABILITY IMAP4rev1] Dovecot ready.")[0] == "imap"

    def test_mysql_greeting_text(self):
        assert self.m.match("MySQL protocol 10; server version 8.0.36") == ("mysql", "8.0.36")

    def test_mariadb_greeting_text(self):
        ident = self.m.identify("MySQL protocol 10; server version 5.5.5-10.6.12-MariaDB")
        assert ident.product == "MariaDB"
        assert ident.version_string == "10.6.12"

    def test_smb_text(self):
        ident = self.m.identify("SMB2 negotiate response; dialect 3.1.1")
        assert ident.service_name == "smb"
        assert ident.version_string == "3.1.1"
        assert ident.product == "SMBv2"

    def test_rdp_text(self):
        assert self.m.match("RDP connection confirm; security TLS")[0] == "ms-wbt-server"

    def test_vnc(self):
        assert self.m.match("RFB 003.008") == ("vnc", "003.008")

    def test_telnet_negotiation(self):
        assert self.m.match("[Binary data: 3 bytes] FF FD 18") == ("telnet", None)

    def test_no_match_is_unknown(self):
        assert self.m.match("hello there") == ("unknown", None)

    def test_empty_and_none(self):
        assert self.m.match("") == ("unknown", None)
        assert self.m.match(None) == ("unknown", None)

    def test_deterministic(self):
        banner = "HTTP/1.1 200 OK\r\nServer: nginx/1.4.6\r\n"
        first = self.m.match(banner)
        for _ in range(20):
            assert self.m.match(banner) == first


class TestRules:

    def test_rules_are_immutable_tuple(self):
        assert isinstance(BUILTIN_RULES, tuple)
        assert isinstance(SignatureMatcher().rules, tuple)

    def test_first_match_wins(self):
        m = SignatureMatcher([
            rule(r"\Afoo", "first"),
            rule(r"\Afoo", "second"),
        ])
        assert m.match("foobar") == ("first", None)

    def test_empty_version_is_none(self):
        r = SignatureRule(re.compile(r"\Asvc( [\d.]+)?"), "svc", "{1}")
        m = SignatureMatcher([r])
        assert m.match("svc") == ("svc", None)
        assert m.match("svc 1.2") == ("svc", "1.2")

    def test_missing_group_reference_is_ignored(self):
        m = SignatureMatcher([rule(r"\Abar", "bar", "{3}")])
        assert m.match("bar") == ("bar", None)

    def test_custom_rules_replace_builtin(self):
        m = SignatureMatcher([rule(r"\ASSH-", "custom-ssh")])
        assert m.match("SSH-2.0-OpenSSH_6.6.1") == ("custom-ssh", None)
        assert m.match("HTTP/1.1 200 OK") == ("unknown", None)


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
