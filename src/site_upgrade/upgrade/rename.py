"""
Rename migration: re-create every legacy-named object under its current name.

Kinds are migrated in a fixed order because later kinds depend on earlier
ones (credentials are signed for the renamed services, role bindings
reference the renamed service accounts and roles, routes target the
renamed services):

  1. services
  2. certificate authorities
  3. credentials
  4. service accounts
  5. roles
  6. role bindings
  7. routes

Every step is "create if absent".  An object already present under its
current name is treated as migrated by an earlier, interrupted run and
left alone, so re-running after a partial failure converges without
re-issuing credentials.  Legacy objects are not touched here; the cleanup
phase deletes them once the workloads have been repointed.
"""

from __future__ import annotations

import copy
import json
import logging
import time
from typing import Callable

from ..certs import CertificateAuthority
from ..client import AlreadyExistsError, KubeClient, NotFoundError
from ..models import (
    CONSOLE_ROUTE_NAME,
    CONTROLLER_POLICY_RULES,
    CONTROLLER_ROLE_BINDING_NAME,
    CONTROLLER_ROLE_NAME,
    CONTROLLER_SERVICE_ACCOUNT_NAME,
    CONTROLLER_SERVICE_NAME,
    EDGE_ROUTE_NAME,
    FRIENDLY_KIND_NAMES,
    INTER_ROUTER_ROUTE_NAME,
    LEGACY_CONSOLE_ROUTE,
    LEGACY_CONTROLLER_SERVICE,
    LEGACY_CONTROLLER_SERVICE_ACCOUNT,
    LEGACY_LOCAL_CA_SECRET,
    LEGACY_LOCAL_TRANSPORT_SERVICE,
    LEGACY_SITE_CA_SECRET,
    LEGACY_SITE_SERVER_SECRET,
    LEGACY_TRANSPORT_ROLE,
    LEGACY_TRANSPORT_SERVICE,
    LEGACY_TRANSPORT_SERVICE_ACCOUNT,
    LOCAL_CA_SECRET,
    LOCAL_TRANSPORT_SERVICE_NAME,
    OAUTH_CONSOLE_SECRET,
    OAUTH_REDIRECT_ANNOTATION,
    OAUTH_ROUTER_CONSOLE_SECRET,
    ROUTER_CONSOLE_SERVICE_NAME,
    SERVING_CERT_ANNOTATION,
    SITE_CA_SECRET,
    SITE_SERVER_SECRET,
    TRANSPORT_ROLE_BINDING_NAME,
    TRANSPORT_ROLE_NAME,
    TRANSPORT_SERVICE_ACCOUNT_NAME,
    TRANSPORT_SERVICE_NAME,
    ExposureTopology,
    ResourceKind,
)
from .credentials import CredentialRegenerator, local_credentials, site_server_credential
from .exposure import (
    DEFAULT_ATTEMPTS,
    DEFAULT_INTERVAL,
    is_ip_address,
    load_balancer_host,
    qualified_service_name,
    resolve_service_host,
    uses_load_balancer,
)

__all__ = ["MIGRATION_ORDER", "RenameMigrationEngine", "transport_hosts"]

logger = logging.getLogger(__name__)

MIGRATION_ORDER: tuple[ResourceKind, ...] = (
    ResourceKind.SERVICE,
    ResourceKind.CERTIFICATE_AUTHORITY,
    ResourceKind.CREDENTIAL,
    ResourceKind.SERVICE_ACCOUNT,
    ResourceKind.ROLE,
    ResourceKind.ROLE_BINDING,
    ResourceKind.ROUTE,
)

_CONSOLE_OAUTH_REDIRECT = json.dumps(
    {
        "kind": "OAuthRedirectReference",
        "apiVersion": "v1",
        "reference": {"kind": "Route", "name": CONSOLE_ROUTE_NAME},
    },
    separators=(",", ":"),
)


def transport_hosts(
    client: KubeClient,
    namespace: str,
    attempts: int = DEFAULT_ATTEMPTS,
    interval: float = DEFAULT_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> list[str]:
    """Hosts the site server credential must be valid for.

    If the legacy transport service was exposed through a load balancer,
    the external address of the renamed service (polled) and of the legacy
    service come first, followed by the stable in-cluster names.  The
    legacy qualified name stays in the list because tokens issued before
    the rename connect through it.
    """
    hosts: list[str] = []
    try:
        legacy = client.get(ResourceKind.SERVICE, LEGACY_TRANSPORT_SERVICE)
    except NotFoundError:
        # Removed by an earlier cleanup; the renamed service has the same type.
        legacy = client.get(ResourceKind.SERVICE, TRANSPORT_SERVICE_NAME)
    if uses_load_balancer(legacy):
        host = resolve_service_host(
            client, TRANSPORT_SERVICE_NAME, attempts=attempts, interval=interval, sleep=sleep
        )
        if host:
            hosts.append(host)
        legacy_host = load_balancer_host(legacy)
        if legacy_host and legacy_host not in hosts:
            hosts.append(legacy_host)
    hosts.append(TRANSPORT_SERVICE_NAME)
    hosts.append(qualified_service_name(TRANSPORT_SERVICE_NAME, namespace))
    hosts.append(qualified_service_name(LEGACY_TRANSPORT_SERVICE, namespace))
    return hosts


class RenameMigrationEngine:
    """Migrates all legacy-named objects of one site, kind by kind."""

    def __init__(
        self,
        client: KubeClient,
        config_map: dict,
        load_ca: Callable[[str], CertificateAuthority],
        attempts: int = DEFAULT_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.namespace = client.namespace
        self.owner_references: list[dict] = list(
            (config_map.get("metadata") or {}).get("ownerReferences") or []
        )
        self.regenerator = CredentialRegenerator(
            client,
            load_ca,
            self.owner_references[0] if self.owner_references else None,
        )
        self.attempts = attempts
        self.interval = interval
        self.sleep = sleep

        self.migrated: list[str] = []
        self.skipped: list[str] = []

        self._routes_in_use = False
        self._router_exposed_as_ip = False
        self._console_uses_load_balancer = False

        self._procedures: dict[ResourceKind, Callable[[], None]] = {
            ResourceKind.SERVICE: self._migrate_services,
            ResourceKind.CERTIFICATE_AUTHORITY: self._migrate_certificate_authorities,
            ResourceKind.CREDENTIAL: self._migrate_credentials,
            ResourceKind.SERVICE_ACCOUNT: self._migrate_service_accounts,
            ResourceKind.ROLE: self._migrate_roles,
            ResourceKind.ROLE_BINDING: self._migrate_role_bindings,
            ResourceKind.ROUTE: self._migrate_routes,
        }

    def run(self) -> ExposureTopology:
        """Run every procedure in ``MIGRATION_ORDER``.

        Any object-store error other than "already exists" propagates and
        aborts the run.
        """
        for kind in MIGRATION_ORDER:
            logger.info("Rename: %s objects", FRIENDLY_KIND_NAMES[kind])
            self._procedures[kind]()
        logger.info(
            "Rename complete: %d created, %d already present",
            len(self.migrated), len(self.skipped),
        )
        return ExposureTopology(
            routes_in_use=self._routes_in_use,
            router_exposed_as_ip=self._router_exposed_as_ip,
            console_uses_load_balancer=self._console_uses_load_balancer,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create_if_absent(
        self, kind: ResourceKind, name: str, build: Callable[[], dict]
    ) -> bool:
        """Create the object returned by *build* unless *name* already exists.

        *build* is only called when the object is missing, so reads of the
        legacy source and credential signing are skipped on resumption.
        """
        label = f"{kind.collection}/{name}"
        if self.client.exists(kind, name):
            logger.info("  %s '%s' already present, skipping", FRIENDLY_KIND_NAMES[kind], name)
            self.skipped.append(label)
            return False
        try:
            self.client.create(kind, build())
        except AlreadyExistsError:
            logger.info("  %s '%s' created concurrently, skipping", FRIENDLY_KIND_NAMES[kind], name)
            self.skipped.append(label)
            return False
        logger.info("  %s '%s' created", FRIENDLY_KIND_NAMES[kind], name)
        self.migrated.append(label)
        return True

    def _metadata(self, source: dict | None, name: str, annotations: dict | None = None) -> dict:
        if source is None:
            metadata: dict = {"name": name, "ownerReferences": list(self.owner_references)}
        else:
            metadata = self.client.clean_metadata(source, name, self.owner_references)
        if annotations:
            metadata["annotations"] = {**(metadata.get("annotations") or {}), **annotations}
        return metadata

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def _copy_service(self, legacy: str, current: str, annotations: dict | None = None) -> None:
        def build() -> dict:
            original = self.client.get(ResourceKind.SERVICE, legacy)
            spec = original.get("spec") or {}
            ports = []
            for port in spec.get("ports") or []:
                # nodePorts stay allocated to the legacy service until cleanup
                ports.append({k: v for k, v in port.items() if k != "nodePort"})
            new_spec: dict = {"ports": ports, "selector": dict(spec.get("selector") or {})}
            if spec.get("type"):
                new_spec["type"] = spec["type"]
            return {
                "apiVersion": "v1",
                "kind": "Service",
                "metadata": self._metadata(original, current, annotations),
                "spec": new_spec,
            }

        self._create_if_absent(ResourceKind.SERVICE, current, build)

    def _migrate_services(self) -> None:
        self._copy_service(LEGACY_LOCAL_TRANSPORT_SERVICE, LOCAL_TRANSPORT_SERVICE_NAME)
        self._copy_service(LEGACY_TRANSPORT_SERVICE, TRANSPORT_SERVICE_NAME)
        self._copy_service(
            LEGACY_CONTROLLER_SERVICE,
            CONTROLLER_SERVICE_NAME,
            {SERVING_CERT_ANNOTATION: OAUTH_CONSOLE_SECRET},
        )
        console = self.client.get(ResourceKind.SERVICE, CONTROLLER_SERVICE_NAME)
        self._console_uses_load_balancer = uses_load_balancer(console)

        try:
            router_console = self.client.get(ResourceKind.SERVICE, ROUTER_CONSOLE_SERVICE_NAME)
        except NotFoundError:
            return
        annotations = router_console.setdefault("metadata", {}).get("annotations") or {}
        if annotations.get(SERVING_CERT_ANNOTATION) != OAUTH_ROUTER_CONSOLE_SECRET:
            annotations[SERVING_CERT_ANNOTATION] = OAUTH_ROUTER_CONSOLE_SECRET
            router_console["metadata"]["annotations"] = annotations
            self.client.update(ResourceKind.SERVICE, router_console)
            logger.info("  Service '%s' serving cert annotation updated", ROUTER_CONSOLE_SERVICE_NAME)

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def _copy_secret(self, kind: ResourceKind, legacy: str, current: str) -> None:
        def build() -> dict:
            original = self.client.get(kind, legacy)
            secret = {
                "apiVersion": "v1",
                "kind": "Secret",
                "metadata": self._metadata(original, current),
                "data": copy.deepcopy(original.get("data") or {}),
            }
            if original.get("type"):
                secret["type"] = original["type"]
            return secret

        self._create_if_absent(kind, current, build)

    def _migrate_certificate_authorities(self) -> None:
        self._copy_secret(ResourceKind.CERTIFICATE_AUTHORITY, LEGACY_LOCAL_CA_SECRET, LOCAL_CA_SECRET)
        self._copy_secret(ResourceKind.CERTIFICATE_AUTHORITY, LEGACY_SITE_CA_SECRET, SITE_CA_SECRET)

    def _detect_routes(self) -> bool:
        """Whether the transport is exposed through routes.

        Errors other than not-found propagate: proceeding on a guess could
        delete the service previously issued tokens point at.
        """
        if not self.client.supports(ResourceKind.ROUTE):
            return False
        try:
            self.client.get(ResourceKind.ROUTE, INTER_ROUTER_ROUTE_NAME)
        except NotFoundError:
            return False
        return True

    def _migrate_credentials(self) -> None:
        for cred in local_credentials(self.namespace):
            self._create_if_absent(
                ResourceKind.CREDENTIAL, cred.name, lambda cred=cred: self.regenerator.build_secret(cred)
            )

        self._routes_in_use = self._detect_routes()
        if self._routes_in_use:
            # Route host names did not change, so the old certificate is still valid.
            self._copy_secret(ResourceKind.CREDENTIAL, LEGACY_SITE_SERVER_SECRET, SITE_SERVER_SECRET)
            return

        def build() -> dict:
            hosts = transport_hosts(
                self.client, self.namespace, self.attempts, self.interval, self.sleep
            )
            self._router_exposed_as_ip = is_ip_address(hosts[0])
            return self.regenerator.build_secret(site_server_credential(hosts))

        if not self._create_if_absent(ResourceKind.CREDENTIAL, SITE_SERVER_SECRET, build):
            # Issued by an earlier run: look the address up once, without waiting.
            hosts = transport_hosts(self.client, self.namespace, attempts=1, sleep=self.sleep)
            self._router_exposed_as_ip = is_ip_address(hosts[0])

    # ------------------------------------------------------------------
    # Identities and permissions
    # ------------------------------------------------------------------

    def _copy_service_account(
        self, legacy: str, current: str, annotations: dict | None = None
    ) -> None:
        def build() -> dict:
            original = self.client.get(ResourceKind.SERVICE_ACCOUNT, legacy)
            account = {
                "apiVersion": "v1",
                "kind": "ServiceAccount",
                "metadata": self._metadata(original, current, annotations),
            }
            if original.get("imagePullSecrets"):
                account["imagePullSecrets"] = copy.deepcopy(original["imagePullSecrets"])
            return account

        self._create_if_absent(ResourceKind.SERVICE_ACCOUNT, current, build)

    def _migrate_service_accounts(self) -> None:
        self._copy_service_account(LEGACY_TRANSPORT_SERVICE_ACCOUNT, TRANSPORT_SERVICE_ACCOUNT_NAME)
        self._copy_service_account(
            LEGACY_CONTROLLER_SERVICE_ACCOUNT,
            CONTROLLER_SERVICE_ACCOUNT_NAME,
            {OAUTH_REDIRECT_ANNOTATION: _CONSOLE_OAUTH_REDIRECT},
        )

    def _migrate_roles(self) -> None:
        self._create_if_absent(
            ResourceKind.ROLE,
            CONTROLLER_ROLE_NAME,
            lambda: {
                "apiVersion": "rbac.authorization.k8s.io/v1",
                "kind": "Role",
                "metadata": self._metadata(None, CONTROLLER_ROLE_NAME),
                "rules": copy.deepcopy(CONTROLLER_POLICY_RULES),
            },
        )

        def build_transport_role() -> dict:
            original = self.client.get(ResourceKind.ROLE, LEGACY_TRANSPORT_ROLE)
            return {
                "apiVersion": "rbac.authorization.k8s.io/v1",
                "kind": "Role",
                "metadata": self._metadata(original, TRANSPORT_ROLE_NAME),
                "rules": copy.deepcopy(original.get("rules") or []),
            }

        self._create_if_absent(ResourceKind.ROLE, TRANSPORT_ROLE_NAME, build_transport_role)

    def _role_binding(self, name: str, service_account: str, role: str) -> dict:
        return {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "RoleBinding",
            "metadata": self._metadata(None, name),
            "subjects": [{"kind": "ServiceAccount", "name": service_account}],
            "roleRef": {
                "apiGroup": "rbac.authorization.k8s.io",
                "kind": "Role",
                "name": role,
            },
        }

    def _migrate_role_bindings(self) -> None:
        for name, account, role in (
            (CONTROLLER_ROLE_BINDING_NAME, CONTROLLER_SERVICE_ACCOUNT_NAME, CONTROLLER_ROLE_NAME),
            (TRANSPORT_ROLE_BINDING_NAME, TRANSPORT_SERVICE_ACCOUNT_NAME, TRANSPORT_ROLE_NAME),
        ):
            self._create_if_absent(
                ResourceKind.ROLE_BINDING,
                name,
                lambda name=name, account=account, role=role: self._role_binding(name, account, role),
            )

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def _retarget_route(self, name: str, service: str) -> None:
        try:
            route = self.client.get(ResourceKind.ROUTE, name)
        except NotFoundError:
            return
        target = route.setdefault("spec", {}).setdefault("to", {})
        if target.get("name") == service:
            return
        target["kind"] = "Service"
        target["name"] = service
        self.client.update(ResourceKind.ROUTE, route)
        logger.info("  Route '%s' now targets service '%s'", name, service)

    def _migrate_routes(self) -> None:
        if not self.client.supports(ResourceKind.ROUTE):
            return

        def build_console_route() -> dict:
            original = self.client.get(ResourceKind.ROUTE, LEGACY_CONSOLE_ROUTE)
            spec = original.get("spec") or {}
            new_spec: dict = {"to": {"kind": "Service", "name": CONTROLLER_SERVICE_NAME}}
            for key in ("path", "port", "tls"):
                if spec.get(key):
                    new_spec[key] = copy.deepcopy(spec[key])
            return {
                "apiVersion": "route.openshift.io/v1",
                "kind": "Route",
                "metadata": {
                    "name": CONSOLE_ROUTE_NAME,
                    "ownerReferences": list(
                        (original.get("metadata") or {}).get("ownerReferences") or []
                    ),
                },
                "spec": new_spec,
            }

        try:
            self._create_if_absent(ResourceKind.ROUTE, CONSOLE_ROUTE_NAME, build_console_route)
        except NotFoundError:
            logger.info("  No legacy console route '%s', nothing to copy", LEGACY_CONSOLE_ROUTE)

        self._retarget_route(EDGE_ROUTE_NAME, TRANSPORT_SERVICE_NAME)
        self._retarget_route(INTER_ROUTER_ROUTE_NAME, TRANSPORT_SERVICE_NAME)
