"""
Certificate authority backed by a CA secret stored on the site.

Secrets hold PEM material base64-encoded under ``tls.crt`` / ``tls.key``
(and ``ca.crt`` for issued credentials), matching the layout of
``kubernetes.io/tls`` secrets.
"""

from __future__ import annotations

import base64
import ipaddress
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

__all__ = ["CertificateAuthority", "CertificateError", "generate_ca", "secret_value"]

DEFAULT_VALIDITY_DAYS = 5 * 365


class CertificateError(Exception):
    """Raised when CA material is missing or unusable."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def secret_value(secret: dict, key: str) -> str:
    """Decode one entry of a secret's ``data`` section ("" if absent)."""
    raw = (secret.get("data") or {}).get(key, "")
    if not raw:
        return ""
    return base64.b64decode(raw).decode("utf-8")


def _key_pem(key: ec.EllipticCurvePrivateKey) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


def _san(host: str) -> x509.GeneralName:
    try:
        return x509.IPAddress(ipaddress.ip_address(host))
    except ValueError:
        return x509.DNSName(host)


def generate_ca(name: str, validity_days: int = DEFAULT_VALIDITY_DAYS) -> dict:
    """Create a new self-signed CA and return it as a secret body."""
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, name)])
    now = _utcnow()
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(private_key=key, algorithm=hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("utf-8")
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "kubernetes.io/tls",
        "metadata": {"name": name},
        "data": {"tls.crt": _b64(cert_pem), "tls.key": _b64(_key_pem(key))},
    }


class CertificateAuthority:
    """Signs leaf certificates with a CA loaded from a secret."""

    def __init__(self, name: str, cert_pem: str, key_pem: str):
        self.name = name
        self.cert_pem = cert_pem
        try:
            self._cert = x509.load_pem_x509_certificate(cert_pem.encode("utf-8"))
            self._key = serialization.load_pem_private_key(key_pem.encode("utf-8"), password=None)
        except ValueError as exc:
            raise CertificateError(f"CA '{name}' holds invalid PEM material: {exc}") from exc
        if not isinstance(self._key, (ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey)):
            raise CertificateError(f"CA '{name}' uses an unsupported private key type")

    @classmethod
    def from_secret(cls, secret: dict) -> "CertificateAuthority":
        name = (secret.get("metadata") or {}).get("name", "?")
        cert_pem = secret_value(secret, "tls.crt")
        key_pem = secret_value(secret, "tls.key")
        if not cert_pem or not key_pem:
            raise CertificateError(f"CA secret '{name}' is missing tls.crt or tls.key")
        return cls(name, cert_pem, key_pem)

    def sign(
        self,
        subject: str,
        hosts: list[str],
        validity_days: int = DEFAULT_VALIDITY_DAYS,
    ) -> tuple[str, str]:
        """Issue a certificate for *subject* valid for *hosts*.

        Returns ``(cert_pem, key_pem)``.
        """
        key = ec.generate_private_key(ec.SECP256R1())
        now = _utcnow()
        builder = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject)]))
            .issuer_name(self._cert.subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + timedelta(days=validity_days))
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        )
        if hosts:
            builder = builder.add_extension(
                x509.SubjectAlternativeName([_san(h) for h in hosts]), critical=False
            )
        cert = builder.sign(private_key=self._key, algorithm=hashes.SHA256())
        return cert.public_bytes(serialization.Encoding.PEM).decode("utf-8"), _key_pem(key)
