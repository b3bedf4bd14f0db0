"""Tests for credential validation and issuance with a real CA."""

from __future__ import annotations

import base64
import json

import pytest
from cryptography import x509

from site_upgrade.certs import CertificateAuthority, generate_ca
from site_upgrade.client import AlreadyExistsError
from site_upgrade.models import ResourceKind
from site_upgrade.upgrade.credentials import (
    MAX_SUBJECT_LENGTH,
    Credential,
    CredentialError,
    CredentialRegenerator,
    local_credentials,
    select_subject,
    site_server_credential,
    validate_credential,
)

from conftest import NAMESPACE, SITE_OWNER


def _decode(secret: dict, key: str) -> str:
    return base64.b64decode(secret["data"][key]).decode("utf-8")


def _load_cert(secret: dict) -> x509.Certificate:
    return x509.load_pem_x509_certificate(_decode(secret, "tls.crt").encode("utf-8"))


@pytest.fixture
def ca_store(store):
    store.put(ResourceKind.CERTIFICATE_AUTHORITY, generate_ca("skupper-local-ca"))
    store.put(ResourceKind.CERTIFICATE_AUTHORITY, generate_ca("skupper-site-ca"))
    return store


@pytest.fixture
def loaded_cas():
    return []


@pytest.fixture
def regenerator(ca_store, loaded_cas):
    def load(name):
        loaded_cas.append(name)
        return CertificateAuthority.from_secret(ca_store.get(ResourceKind.CERTIFICATE_AUTHORITY, name))

    return CredentialRegenerator(ca_store, load, SITE_OWNER)


class TestValidation:
    def test_endpoint_credential_without_hosts_rejected_before_ca(self, regenerator, loaded_cas):
        cred = Credential(ca="skupper-site-ca", name="x", subject="x", hosts=())
        with pytest.raises(CredentialError):
            regenerator.issue(cred)
        assert loaded_cas == []

    def test_overlong_subject_rejected(self, regenerator, loaded_cas):
        subject = "a" * (MAX_SUBJECT_LENGTH + 1)
        cred = Credential(ca="skupper-site-ca", name="x", subject=subject, hosts=(subject,))
        with pytest.raises(CredentialError):
            regenerator.issue(cred)
        assert loaded_cas == []

    def test_bundle_needs_no_hosts(self, regenerator):
        cred = Credential(ca="skupper-local-ca", name="bundle", subject="skupper-router-local", connect_json=True)
        secret = regenerator.build_secret(cred)
        assert "connect.json" in secret["data"]

    def test_bundle_exempt_from_subject_length(self):
        validate_credential(Credential(ca="c", name="bundle", subject="b" * 80, connect_json=True))


class TestSubjectSelection:
    def test_first_short_host(self):
        long_host = "x" * 70 + ".elb.amazonaws.com"
        assert select_subject([long_host, "skupper-router"], "fallback") == "skupper-router"

    def test_fallback_when_all_too_long(self):
        assert select_subject(["y" * 64], "fallback") == "fallback"

    def test_site_server_credential_uses_hosts(self):
        cred = site_server_credential(["10.0.0.9", "skupper-router"])
        assert cred.name == "skupper-site-server"
        assert cred.ca == "skupper-site-ca"
        assert cred.subject == "10.0.0.9"
        assert cred.hosts == ("10.0.0.9", "skupper-router")


class TestIssue:
    def test_local_pair(self, regenerator, ca_store):
        server, client = local_credentials(NAMESPACE)
        regenerator.issue(server)
        regenerator.issue(client)

        server_secret = ca_store.peek(ResourceKind.CREDENTIAL, "skupper-local-server")
        cert = _load_cert(server_secret)
        sans = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert sans.get_values_for_type(x509.DNSName) == [
            "skupper-router-local",
            f"skupper-router-local.{NAMESPACE}.svc.cluster.local",
        ]
        assert server_secret["metadata"]["ownerReferences"] == [SITE_OWNER]

        client_secret = ca_store.peek(ResourceKind.CREDENTIAL, "skupper-local-client")
        connect = json.loads(_decode(client_secret, "connect.json"))
        assert connect["host"] == "skupper-router-local"
        assert connect["scheme"] == "amqps"

    def test_signed_by_named_ca(self, regenerator, ca_store):
        regenerator.issue(site_server_credential(["10.0.0.9", "skupper-router"]))
        secret = ca_store.peek(ResourceKind.CREDENTIAL, "skupper-site-server")
        ca_secret = ca_store.peek(ResourceKind.CERTIFICATE_AUTHORITY, "skupper-site-ca")

        assert _decode(secret, "ca.crt") == _decode(ca_secret, "tls.crt")
        ca_cert = x509.load_pem_x509_certificate(_decode(ca_secret, "tls.crt").encode("utf-8"))
        assert _load_cert(secret).issuer == ca_cert.subject
        sans = _load_cert(secret).extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert [str(ip) for ip in sans.get_values_for_type(x509.IPAddress)] == ["10.0.0.9"]

    def test_ca_loaded_once(self, regenerator, loaded_cas):
        server, client = local_credentials(NAMESPACE)
        regenerator.issue(server)
        regenerator.issue(client)
        assert loaded_cas == ["skupper-local-ca"]

    def test_existing_secret_raises(self, regenerator):
        server, _ = local_credentials(NAMESPACE)
        regenerator.issue(server)
        with pytest.raises(AlreadyExistsError):
            regenerator.issue(server)
