"""
Regeneration of credentials whose validity depends on service names.

Certificates issued before the rename list the legacy service names as
their subject alternative names, so they have to be re-issued for the
current names.  The CA itself is only used as an opaque signer.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Callable

from ..certs import CertificateAuthority
from ..client import KubeClient
from ..models import (
    LOCAL_CA_SECRET,
    LOCAL_CLIENT_SECRET,
    LOCAL_SERVER_SECRET,
    LOCAL_TRANSPORT_SERVICE_NAME,
    SITE_CA_SECRET,
    SITE_SERVER_SECRET,
    TRANSPORT_SERVICE_NAME,
    ResourceKind,
)
from .exposure import qualified_service_name

__all__ = [
    "MAX_SUBJECT_LENGTH",
    "Credential",
    "CredentialError",
    "CredentialRegenerator",
    "local_credentials",
    "select_subject",
    "site_server_credential",
    "validate_credential",
]

logger = logging.getLogger(__name__)

# Upper bound for an X.509 common name.
MAX_SUBJECT_LENGTH = 63

CONNECT_JSON_KEY = "connect.json"
_MOUNT_PATH = "/etc/messaging"


class CredentialError(Exception):
    """Raised for a credential request that cannot be issued."""


@dataclass(frozen=True)
class Credential:
    ca: str
    name: str
    subject: str
    hosts: tuple[str, ...] = field(default_factory=tuple)
    # A client-connection bundle: carries connect.json and no host list.
    connect_json: bool = False


def validate_credential(cred: Credential) -> None:
    if cred.connect_json:
        return
    if not cred.hosts:
        raise CredentialError(
            f"Credential '{cred.name}' authenticates an endpoint but lists no hosts"
        )
    if len(cred.subject) > MAX_SUBJECT_LENGTH:
        raise CredentialError(
            f"Credential '{cred.name}' subject {cred.subject!r} exceeds "
            f"{MAX_SUBJECT_LENGTH} characters"
        )


def select_subject(hosts: list[str], fallback: str) -> str:
    """First host short enough to be a certificate subject, else *fallback*."""
    for host in hosts:
        if len(host) <= MAX_SUBJECT_LENGTH:
            return host
    return fallback


def local_credentials(namespace: str) -> list[Credential]:
    """The intra-site mutual TLS pair: router server cert and client bundle."""
    return [
        Credential(
            ca=LOCAL_CA_SECRET,
            name=LOCAL_SERVER_SECRET,
            subject=LOCAL_TRANSPORT_SERVICE_NAME,
            hosts=(
                LOCAL_TRANSPORT_SERVICE_NAME,
                qualified_service_name(LOCAL_TRANSPORT_SERVICE_NAME, namespace),
            ),
        ),
        Credential(
            ca=LOCAL_CA_SECRET,
            name=LOCAL_CLIENT_SECRET,
            subject=LOCAL_TRANSPORT_SERVICE_NAME,
            connect_json=True,
        ),
    ]


def site_server_credential(hosts: list[str]) -> Credential:
    """The server certificate presented to linked sites."""
    return Credential(
        ca=SITE_CA_SECRET,
        name=SITE_SERVER_SECRET,
        subject=select_subject(hosts, TRANSPORT_SERVICE_NAME),
        hosts=tuple(hosts),
    )


def _connect_json(host: str) -> str:
    return json.dumps(
        {
            "scheme": "amqps",
            "host": host,
            "port": "5671",
            "tls": {
                "ca": f"{_MOUNT_PATH}/ca.crt",
                "cert": f"{_MOUNT_PATH}/tls.crt",
                "key": f"{_MOUNT_PATH}/tls.key",
                "verify": True,
            },
        },
        indent=4,
    )


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


class CredentialRegenerator:
    """Issues credentials as secrets, signing with CAs loaded on demand."""

    def __init__(
        self,
        client: KubeClient,
        load_ca: Callable[[str], CertificateAuthority],
        owner_reference: dict | None = None,
    ):
        self.client = client
        self._load_ca = load_ca
        self.owner_reference = owner_reference
        self._cas: dict[str, CertificateAuthority] = {}

    def _ca(self, name: str) -> CertificateAuthority:
        if name not in self._cas:
            self._cas[name] = self._load_ca(name)
        return self._cas[name]

    def build_secret(self, cred: Credential) -> dict:
        validate_credential(cred)
        ca = self._ca(cred.ca)
        cert_pem, key_pem = ca.sign(cred.subject, list(cred.hosts))
        data = {
            "tls.crt": _b64(cert_pem),
            "tls.key": _b64(key_pem),
            "ca.crt": _b64(ca.cert_pem),
        }
        if cred.connect_json:
            data[CONNECT_JSON_KEY] = _b64(_connect_json(cred.subject))
        metadata: dict = {"name": cred.name}
        if self.owner_reference:
            metadata["ownerReferences"] = [self.owner_reference]
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "type": "kubernetes.io/tls",
            "metadata": metadata,
            "data": data,
        }

    def issue(self, cred: Credential) -> dict:
        """Sign *cred* and create it as a secret.

        The request is validated before the CA is touched.  An existing
        secret of the same name raises ``AlreadyExistsError``.
        """
        secret = self.build_secret(cred)
        created = self.client.create(ResourceKind.CREDENTIAL, secret)
        logger.info(
            "Issued credential '%s' (subject %s, %d host(s)) signed by '%s'",
            cred.name, cred.subject, len(cred.hosts), cred.ca,
        )
        return created
