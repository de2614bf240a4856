"""TLS trust material for reaching Keycloak over cluster-internal routes.

Keycloak sits behind self-signed or cluster-CA certificates, so the admin
session trusts only the CA bundle published by the cluster and skips the
hostname check (the service IP fallback never matches the certificate name).
"""
from __future__ import annotations
import logging
import ssl
from pathlib import Path
from typing import List

from cryptography import x509
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)


class TrustMaterial:
    """Parsed CA bundle, built once per invocation and shared by every session."""

    def __init__(self, pem: str, certificates: List[x509.Certificate]):
        self.pem = pem
        self.certificates = certificates

    @classmethod
    def from_pem(cls, pem: str) -> "TrustMaterial":
        """Build trust material from PEM text.

        Raises:
            ValueError: If the text holds no parsable certificate
        """
        if not pem or not pem.strip():
            raise ValueError("CA certificate is empty")
        try:
            certificates = x509.load_pem_x509_certificates(pem.encode("utf-8"))
        except ValueError as exc:
            logger.warning("[trust] Error parsing CA certificate for authservice: %s", exc)
            raise ValueError(f"Invalid CA certificate: {exc}") from exc
        for cert in certificates:
            logger.debug("[trust] Trusting %s", cert.subject.rfc4514_string())
        return cls(pem, certificates)

    @classmethod
    def from_file(cls, path: str | Path) -> "TrustMaterial":
        return cls.from_pem(Path(path).read_text(encoding="utf-8"))

    def ssl_context(self) -> ssl.SSLContext:
        """Return a client context trusting only this bundle, without hostname checks."""
        context = ssl.create_default_context(purpose=ssl.Purpose.SERVER_AUTH, cadata=self.pem)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_REQUIRED
        return context

    def adapter(self) -> HTTPAdapter:
        return TrustMaterialAdapter(self)

    def __repr__(self) -> str:
        return f"TrustMaterial(certificates={len(self.certificates)})"


class TrustMaterialAdapter(HTTPAdapter):
    """HTTPAdapter that validates peers against a TrustMaterial bundle."""

    def __init__(self, trust: TrustMaterial, **kwargs):
        self._ssl_context = trust.ssl_context()
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        kwargs["ssl_context"] = self._ssl_context
        kwargs["assert_hostname"] = False
        return super().init_poolmanager(*args, **kwargs)

    def cert_verify(self, conn, url, verify, cert):
        # The pool's ssl_context already carries the CA bundle; keep requests
        # from swapping in certifi.
        super().cert_verify(conn, url, verify, cert)
        if url.lower().startswith("https"):
            conn.ca_certs = None
            conn.ca_cert_dir = None
