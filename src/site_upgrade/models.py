"""
Shared data models and object names used across the site-upgrade project.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


# ------------------------------------------------------------------
# Resource kinds handled by the object store and the rename engine
# ------------------------------------------------------------------

class ResourceKind(enum.Enum):
    """Closed set of object kinds a site is made of.

    Certificate authorities and credentials are both stored as secrets but
    migrate differently, so they are distinct kinds.
    """

    CONFIG_MAP = "config_map"
    SERVICE = "service"
    CERTIFICATE_AUTHORITY = "certificate_authority"
    CREDENTIAL = "credential"
    SERVICE_ACCOUNT = "service_account"
    ROLE = "role"
    ROLE_BINDING = "role_binding"
    ROUTE = "route"
    DEPLOYMENT = "deployment"

    @property
    def collection(self) -> str:
        """API collection name used in object-store URLs."""
        return _COLLECTIONS[self]


_COLLECTIONS = {
    ResourceKind.CONFIG_MAP: "configmaps",
    ResourceKind.SERVICE: "services",
    ResourceKind.CERTIFICATE_AUTHORITY: "secrets",
    ResourceKind.CREDENTIAL: "secrets",
    ResourceKind.SERVICE_ACCOUNT: "serviceaccounts",
    ResourceKind.ROLE: "roles",
    ResourceKind.ROLE_BINDING: "rolebindings",
    ResourceKind.ROUTE: "routes",
    ResourceKind.DEPLOYMENT: "deployments",
}


FRIENDLY_KIND_NAMES = {
    ResourceKind.CONFIG_MAP: "Config Map",
    ResourceKind.SERVICE: "Service",
    ResourceKind.CERTIFICATE_AUTHORITY: "Certificate Authority",
    ResourceKind.CREDENTIAL: "Credential",
    ResourceKind.SERVICE_ACCOUNT: "Service Account",
    ResourceKind.ROLE: "Role",
    ResourceKind.ROLE_BINDING: "Role Binding",
    ResourceKind.ROUTE: "Route",
    ResourceKind.DEPLOYMENT: "Deployment",
}


# ------------------------------------------------------------------
# Current object names
# ------------------------------------------------------------------

TRANSPORT_CONFIG_MAP_NAME = "skupper-internal"
UPDATE_STATE_CONFIG_MAP_NAME = "skupper-update-state"

TRANSPORT_DEPLOYMENT_NAME = "skupper-router"
CONTROLLER_DEPLOYMENT_NAME = "skupper-service-controller"

TRANSPORT_SERVICE_NAME = "skupper-router"
LOCAL_TRANSPORT_SERVICE_NAME = "skupper-router-local"
CONTROLLER_SERVICE_NAME = "skupper"
ROUTER_CONSOLE_SERVICE_NAME = "skupper-router-console"

LOCAL_CA_SECRET = "skupper-local-ca"
SITE_CA_SECRET = "skupper-site-ca"
LOCAL_SERVER_SECRET = "skupper-local-server"
LOCAL_CLIENT_SECRET = "skupper-local-client"
SITE_SERVER_SECRET = "skupper-site-server"
OAUTH_CONSOLE_SECRET = "skupper-console-certs"
OAUTH_ROUTER_CONSOLE_SECRET = "skupper-router-console-certs"

TRANSPORT_SERVICE_ACCOUNT_NAME = "skupper-router"
CONTROLLER_SERVICE_ACCOUNT_NAME = "skupper-service-controller"
TRANSPORT_ROLE_NAME = "skupper-router"
CONTROLLER_ROLE_NAME = "skupper-service-controller"
TRANSPORT_ROLE_BINDING_NAME = "skupper-router"
CONTROLLER_ROLE_BINDING_NAME = "skupper-service-controller"

CONSOLE_ROUTE_NAME = "skupper"
EDGE_ROUTE_NAME = "skupper-edge"
INTER_ROUTER_ROUTE_NAME = "skupper-inter-router"

UPDATED_ANNOTATION = "skupper.io/updated"
SERVING_CERT_ANNOTATION = "service.alpha.openshift.io/serving-cert-secret-name"
OAUTH_REDIRECT_ANNOTATION = "serviceaccounts.openshift.io/oauth-redirectreference.primary"

TRANSPORT_PROMETHEUS_ANNOTATIONS = {
    "prometheus.io/port": "9090",
    "prometheus.io/scrape": "true",
}

CONTROLLER_POLICY_RULES = [
    {
        "apiGroups": [""],
        "resources": ["services", "configmaps", "pods", "events"],
        "verbs": ["get", "list", "watch", "create", "update", "delete"],
    },
    {
        "apiGroups": ["apps"],
        "resources": ["deployments", "statefulsets"],
        "verbs": ["get", "list", "watch", "create", "update", "delete"],
    },
    {
        "apiGroups": ["route.openshift.io"],
        "resources": ["routes"],
        "verbs": ["get", "list", "watch", "create", "delete"],
    },
]


# ------------------------------------------------------------------
# Legacy (pre-0.5.0) object names
# ------------------------------------------------------------------

LEGACY_LOCAL_TRANSPORT_SERVICE = "skupper-messaging"
LEGACY_TRANSPORT_SERVICE = "skupper-internal"
LEGACY_CONTROLLER_SERVICE = "skupper-controller"
LEGACY_LOCAL_CA_SECRET = "skupper-ca"
LEGACY_SITE_CA_SECRET = "skupper-internal-ca"
LEGACY_SITE_SERVER_SECRET = "skupper-internal"
LEGACY_LOCAL_SERVER_SECRET = "skupper-amqps"
LEGACY_LOCAL_CLIENT_SECRET = "skupper"
LEGACY_TRANSPORT_SERVICE_ACCOUNT = "skupper"
LEGACY_CONTROLLER_SERVICE_ACCOUNT = "skupper-proxy-controller"
LEGACY_TRANSPORT_ROLE = "skupper-view"
LEGACY_CONTROLLER_ROLE = "skupper-edit"
LEGACY_TRANSPORT_ROLE_BINDING = "skupper-skupper-view"
LEGACY_CONTROLLER_ROLE_BINDING = "skupper-proxy-controller-skupper-edit"
LEGACY_CONSOLE_ROUTE = "skupper-controller"
LEGACY_ROUTER_CONSOLE_CERTS = "skupper-proxy-certs"
LEGACY_CONSOLE_CERTS = "skupper-controller-certs"


# ------------------------------------------------------------------
# Run-level records
# ------------------------------------------------------------------

@dataclass
class SiteMetadata:
    """Identity and version recorded on the site's config record."""
    id: str = ""
    version: str = ""


@dataclass(frozen=True)
class UpgradeStatus:
    in_progress: bool
    original_version: str = ""


@dataclass(frozen=True)
class UpgradePlan:
    """Decisions taken once at the start of a run.

    Later phases only read this; nothing re-derives ``rename`` mid-run.
    """
    rename: bool
    update_site: bool
    in_progress: bool
    original_version: str = ""
    force_restart: bool = False


@dataclass(frozen=True)
class ExposureTopology:
    """How the site is exposed, as found while renaming."""
    routes_in_use: bool = False
    router_exposed_as_ip: bool = False
    console_uses_load_balancer: bool = False


@dataclass
class UpgradeResult:
    plan: UpgradePlan
    topology: ExposureTopology = field(default_factory=ExposureTopology)
    transport_updated: bool = False
    controller_updated: bool = False
    migrated: list[str] = field(default_factory=list)  # "<kind>/<name>" created this run
    skipped: list[str] = field(default_factory=list)   # already present from an earlier run
    deleted: list[str] = field(default_factory=list)
    retained: list[str] = field(default_factory=list)

    @property
    def updated(self) -> bool:
        return self.transport_updated or self.controller_updated or self.plan.update_site
