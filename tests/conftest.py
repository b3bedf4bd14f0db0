"""Shared fixtures: an in-memory object store and pre-0.5.0 site builders."""

from __future__ import annotations

import copy
import json
from datetime import datetime, timezone

import pytest

from site_upgrade.certs import generate_ca
from site_upgrade.client import AlreadyExistsError, KubeClient, NotFoundError
from site_upgrade.config import ClusterConfig, ImageConfig, Settings, UpgradeConfig
from site_upgrade.models import ResourceKind
from site_upgrade.site_config import ROUTER_CONFIG_KEY

NAMESPACE = "site-ns"
ROUTER_IMAGE = "quay.io/skupper/skupper-router:0.6.0"
CONTROLLER_IMAGE = "quay.io/skupper/service-controller:0.6.0"
OLD_ROUTER_IMAGE = "quay.io/skupper/qdrouterd:0.3"
OLD_CONTROLLER_IMAGE = "quay.io/skupper/service-controller:0.4.2"

SITE_OWNER = {
    "apiVersion": "v1",
    "kind": "ConfigMap",
    "name": "skupper-site",
    "uid": "5c1e2f9a-0000-4000-8000-000000000001",
}

FIXED_NOW = datetime(2026, 10, 18, 9, 30, 0, tzinfo=timezone.utc)


class FakeStore:
    """In-memory stand-in for ``KubeClient``.

    Objects are kept per (collection, name).  Every successful create,
    update and delete is appended to ``mutations`` as ``(verb, label)``.
    ``fail()`` arms an exception for one verb/object combination.
    """

    clean_metadata = staticmethod(KubeClient.clean_metadata)

    def __init__(self, namespace: str = NAMESPACE, routes: bool = False):
        self.namespace = namespace
        self.routes = routes
        self.objects: dict[tuple[str, str], dict] = {}
        self.mutations: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str, str], Exception] = {}
        # service name -> ingress address given to it when created
        self.lb_addresses: dict[str, str] = {}

    # -- test helpers -------------------------------------------------

    def put(self, kind: ResourceKind, obj: dict) -> None:
        self.objects[(kind.collection, obj["metadata"]["name"])] = copy.deepcopy(obj)

    def peek(self, kind: ResourceKind, name: str) -> dict | None:
        return self.objects.get((kind.collection, name))

    def fail(self, verb: str, kind: ResourceKind, name: str, exc: Exception) -> None:
        self.failures[(verb, kind.collection, name)] = exc

    def names(self, kind: ResourceKind) -> set[str]:
        return {name for (collection, name) in self.objects if collection == kind.collection}

    def _check(self, verb: str, kind: ResourceKind, name: str) -> None:
        exc = self.failures.get((verb, kind.collection, name))
        if exc is not None:
            raise exc

    # -- client interface ---------------------------------------------

    def get(self, kind: ResourceKind, name: str) -> dict:
        self._check("get", kind, name)
        obj = self.objects.get((kind.collection, name))
        if obj is None:
            raise NotFoundError(f"{kind.collection}/{name} not found", 404)
        return copy.deepcopy(obj)

    def create(self, kind: ResourceKind, obj: dict) -> dict:
        name = obj["metadata"]["name"]
        self._check("create", kind, name)
        key = (kind.collection, name)
        if key in self.objects:
            raise AlreadyExistsError(f"{kind.collection}/{name} already exists", 409)
        stored = copy.deepcopy(obj)
        if kind is ResourceKind.SERVICE and name in self.lb_addresses:
            stored["status"] = {"loadBalancer": {"ingress": [{"ip": self.lb_addresses[name]}]}}
        self.objects[key] = stored
        self.mutations.append(("create", f"{kind.collection}/{name}"))
        return copy.deepcopy(stored)

    def update(self, kind: ResourceKind, obj: dict) -> dict:
        name = obj["metadata"]["name"]
        self._check("update", kind, name)
        key = (kind.collection, name)
        if key not in self.objects:
            raise NotFoundError(f"{kind.collection}/{name} not found", 404)
        self.objects[key] = copy.deepcopy(obj)
        self.mutations.append(("update", f"{kind.collection}/{name}"))
        return copy.deepcopy(obj)

    def delete(self, kind: ResourceKind, name: str) -> None:
        self._check("delete", kind, name)
        if self.objects.pop((kind.collection, name), None) is None:
            raise NotFoundError(f"{kind.collection}/{name} not found", 404)
        self.mutations.append(("delete", f"{kind.collection}/{name}"))

    def exists(self, kind: ResourceKind, name: str) -> bool:
        try:
            self.get(kind, name)
        except NotFoundError:
            return False
        return True

    def supports(self, kind: ResourceKind) -> bool:
        if kind is ResourceKind.ROUTE:
            return self.routes
        return True


# ------------------------------------------------------------------
# Object builders
# ------------------------------------------------------------------

def router_config_map(version: str, site_id: str = "site-1", owner: dict | None = SITE_OWNER) -> dict:
    entities = [
        [
            "router",
            {
                "id": "site-ns-router",
                "mode": "interior",
                "metadata": json.dumps({"id": site_id, "version": version}),
            },
        ],
        ["listener", {"host": "localhost", "port": 5672, "role": "normal"}],
        ["log", {"module": "DEFAULT", "enable": "info+"}],
    ]
    metadata: dict = {"name": "skupper-internal", "uid": "cm-uid", "resourceVersion": "7"}
    if owner:
        metadata["ownerReferences"] = [owner]
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": metadata,
        "data": {ROUTER_CONFIG_KEY: json.dumps(entities)},
    }


def service(name: str, ports: list[dict], lb_address: str = "", lb: bool = False) -> dict:
    svc: dict = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": name,
            "uid": f"uid-{name}",
            "resourceVersion": "3",
            "ownerReferences": [SITE_OWNER],
        },
        "spec": {
            "type": "LoadBalancer" if lb or lb_address else "ClusterIP",
            "selector": {"application": "skupper-router"},
            "ports": ports,
            "clusterIP": "10.96.0.10",
        },
    }
    if lb_address:
        svc["status"] = {"loadBalancer": {"ingress": [{"ip": lb_address}]}}
    return svc


def deployment(name: str, image: str, service_account: str, secrets: list[str], oauth: bool = False) -> dict:
    containers: list[dict] = [
        {
            "name": name,
            "image": image,
            "volumeMounts": [{"name": s, "mountPath": f"/etc/{s}"} for s in secrets],
        }
    ]
    if oauth:
        containers.append(
            {
                "name": "oauth-proxy",
                "image": "openshift/oauth-proxy:latest",
                "args": ["--https-address=:8443", f"--openshift-service-account={service_account}"],
            }
        )
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "ownerReferences": [SITE_OWNER]},
        "spec": {
            "template": {
                "metadata": {"labels": {"application": name}},
                "spec": {
                    "serviceAccountName": service_account,
                    "containers": containers,
                    "volumes": [{"name": s, "secret": {"secretName": s}} for s in secrets],
                },
            }
        },
    }


def route(name: str, target: str, host: str) -> dict:
    return {
        "apiVersion": "route.openshift.io/v1",
        "kind": "Route",
        "metadata": {"name": name, "ownerReferences": [SITE_OWNER]},
        "spec": {"host": host, "to": {"kind": "Service", "name": target}, "tls": {"termination": "passthrough"}},
    }


def _secret(name: str) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "ownerReferences": [SITE_OWNER]},
        "data": {"tls.crt": "b2xk", "tls.key": "b2xk"},
    }


def seed_legacy_site(
    store: FakeStore,
    version: str = "0.4.2",
    transport_lb_address: str = "",
    console_lb: bool = False,
    routes: bool = False,
    oauth: bool = False,
) -> FakeStore:
    """Populate *store* with a site deployed under the legacy naming scheme."""
    store.routes = routes
    store.put(ResourceKind.CONFIG_MAP, router_config_map(version))

    store.put(ResourceKind.SERVICE, service("skupper-messaging", [{"name": "amqps", "port": 5671}]))
    store.put(
        ResourceKind.SERVICE,
        service(
            "skupper-internal",
            [
                {"name": "inter-router", "port": 55671, "nodePort": 31001},
                {"name": "edge", "port": 45671, "nodePort": 31002},
            ],
            lb_address=transport_lb_address,
        ),
    )
    store.put(
        ResourceKind.SERVICE,
        service("skupper-controller", [{"name": "console", "port": 8080}], lb=console_lb),
    )

    for name in ("skupper-ca", "skupper-internal-ca"):
        ca = generate_ca(name)
        ca["metadata"]["ownerReferences"] = [SITE_OWNER]
        store.put(ResourceKind.CERTIFICATE_AUTHORITY, ca)
    for name in ("skupper-amqps", "skupper", "skupper-internal"):
        store.put(ResourceKind.CREDENTIAL, _secret(name))

    for name in ("skupper", "skupper-proxy-controller"):
        store.put(
            ResourceKind.SERVICE_ACCOUNT,
            {"apiVersion": "v1", "kind": "ServiceAccount", "metadata": {"name": name}},
        )
    store.put(
        ResourceKind.ROLE,
        {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "Role",
            "metadata": {"name": "skupper-view"},
            "rules": [{"apiGroups": [""], "resources": ["pods"], "verbs": ["get", "list", "watch"]}],
        },
    )
    store.put(
        ResourceKind.ROLE,
        {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "Role",
            "metadata": {"name": "skupper-edit"},
            "rules": [{"apiGroups": [""], "resources": ["services"], "verbs": ["*"]}],
        },
    )
    for name in ("skupper-skupper-view", "skupper-proxy-controller-skupper-edit"):
        store.put(
            ResourceKind.ROLE_BINDING,
            {"apiVersion": "rbac.authorization.k8s.io/v1", "kind": "RoleBinding", "metadata": {"name": name}},
        )

    store.put(
        ResourceKind.DEPLOYMENT,
        deployment(
            "skupper-router",
            OLD_ROUTER_IMAGE,
            "skupper",
            ["skupper-amqps", "skupper-internal", "skupper-proxy-certs"],
            oauth=oauth,
        ),
    )
    store.put(
        ResourceKind.DEPLOYMENT,
        deployment(
            "skupper-service-controller",
            OLD_CONTROLLER_IMAGE,
            "skupper-proxy-controller",
            ["skupper", "skupper-controller-certs"],
            oauth=oauth,
        ),
    )

    if routes:
        store.put(ResourceKind.ROUTE, route("skupper-controller", "skupper-controller", "console.example.com"))
        store.put(ResourceKind.ROUTE, route("skupper-edge", "skupper-internal", "edge.example.com"))
        store.put(ResourceKind.ROUTE, route("skupper-inter-router", "skupper-internal", "ir.example.com"))
    return store


def seed_current_site(store: FakeStore, version: str = "0.6.0") -> FakeStore:
    """A site already using the current names."""
    store.put(ResourceKind.CONFIG_MAP, router_config_map(version))
    store.put(
        ResourceKind.DEPLOYMENT,
        deployment("skupper-router", ROUTER_IMAGE, "skupper-router", ["skupper-local-server"]),
    )
    store.put(
        ResourceKind.DEPLOYMENT,
        deployment(
            "skupper-service-controller",
            CONTROLLER_IMAGE,
            "skupper-service-controller",
            ["skupper-local-client"],
        ),
    )
    store.put(ResourceKind.SERVICE, service("skupper", [{"name": "console", "port": 8080}]))
    return store


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------

@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def legacy_store(store: FakeStore) -> FakeStore:
    return seed_legacy_site(store)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        cluster=ClusterConfig(token="test-token", namespace=NAMESPACE),
        images=ImageConfig(router=ROUTER_IMAGE, controller=CONTROLLER_IMAGE),
        upgrade=UpgradeConfig(wait_attempts=3, wait_interval=0.5),
    )


class Recorder:
    """Collects calls to an injected callable (sleep, notify)."""

    def __init__(self) -> None:
        self.calls: list = []

    def __call__(self, value) -> None:
        self.calls.append(value)


@pytest.fixture
def sleeps() -> Recorder:
    return Recorder()


@pytest.fixture
def messages() -> Recorder:
    return Recorder()
