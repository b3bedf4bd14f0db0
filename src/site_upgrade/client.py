"""
Kubernetes API client for reading, creating, updating and deleting the
objects a site is made of.

Only the CRUD primitives the upgrade needs are implemented.  Errors are
translated into ``NotFoundError`` / ``AlreadyExistsError`` so callers can
express "create if absent" and "delete if present" without looking at
HTTP status codes.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .models import ResourceKind

__all__ = [
    "AlreadyExistsError",
    "ApiError",
    "KubeClient",
    "NotFoundError",
]

logger = logging.getLogger(__name__)

# API group prefix per collection.
_API_PREFIXES = {
    "configmaps": "/api/v1",
    "secrets": "/api/v1",
    "services": "/api/v1",
    "serviceaccounts": "/api/v1",
    "deployments": "/apis/apps/v1",
    "roles": "/apis/rbac.authorization.k8s.io/v1",
    "rolebindings": "/apis/rbac.authorization.k8s.io/v1",
    "routes": "/apis/route.openshift.io/v1",
}

# Metadata fields owned by the API server.  They must not be sent when an
# object is created as a copy of another one.
_SERVER_MANAGED_METADATA = frozenset(
    {
        "uid",
        "resourceVersion",
        "creationTimestamp",
        "managedFields",
        "selfLink",
        "generation",
        "deletionTimestamp",
        "deletionGracePeriodSeconds",
    }
)


class ApiError(Exception):
    """Raised for any failed object-store request."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class NotFoundError(ApiError):
    """The requested object does not exist."""


class AlreadyExistsError(ApiError):
    """An object with the same name already exists."""


class KubeClient:
    """Client for the Kubernetes API, bound to a single namespace."""

    # Default timeout for all HTTP requests: (connect, read) in seconds.
    DEFAULT_TIMEOUT = (10, 60)

    def __init__(
        self,
        api_url: str,
        token: str,
        namespace: str,
        verify: bool | str = True,
    ):
        self.api_url = api_url.rstrip("/")
        self.namespace = namespace
        self.session = requests.Session()
        self.session.verify = verify
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )
        # Retry on transient server errors and connection failures.
        retry = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=[502, 503, 504],
            allowed_methods=["GET", "POST", "PUT", "DELETE"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

        self._supported: dict[str, bool] = {}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _collection_url(self, kind: ResourceKind) -> str:
        collection = kind.collection
        prefix = _API_PREFIXES[collection]
        return f"{self.api_url}{prefix}/namespaces/{self.namespace}/{collection}"

    def _object_url(self, kind: ResourceKind, name: str) -> str:
        return f"{self._collection_url(kind)}/{name}"

    @staticmethod
    def _raise_for_status(resp: requests.Response, kind: ResourceKind, name: str) -> None:
        if resp.status_code < 300:
            return
        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        message = payload.get("message", "") or resp.text[:500]
        desc = f"{kind.collection}/{name}: HTTP {resp.status_code} {message}".strip()
        if resp.status_code == 404:
            raise NotFoundError(desc, resp.status_code)
        # 409 also covers a stale resourceVersion on PUT ("Conflict").
        if resp.status_code == 409 and payload.get("reason") == "AlreadyExists":
            raise AlreadyExistsError(desc, resp.status_code)
        raise ApiError(desc, resp.status_code)

    def _request(
        self,
        method: str,
        url: str,
        kind: ResourceKind,
        name: str,
        body: dict | None = None,
    ) -> dict:
        logger.debug("%s %s", method, url)
        try:
            resp = self.session.request(
                method, url, json=body, timeout=self.DEFAULT_TIMEOUT
            )
        except requests.RequestException as exc:
            raise ApiError(f"{kind.collection}/{name}: {exc}") from exc
        self._raise_for_status(resp, kind, name)
        if not resp.content:
            return {}
        return resp.json()

    # ------------------------------------------------------------------
    # CRUD primitives
    # ------------------------------------------------------------------

    def get(self, kind: ResourceKind, name: str) -> dict:
        """GET /.../namespaces/{ns}/{collection}/{name}"""
        return self._request("GET", self._object_url(kind, name), kind, name)

    def create(self, kind: ResourceKind, obj: dict) -> dict:
        """POST /.../namespaces/{ns}/{collection}"""
        name = (obj.get("metadata") or {}).get("name", "")
        return self._request("POST", self._collection_url(kind), kind, name, obj)

    def update(self, kind: ResourceKind, obj: dict) -> dict:
        """PUT /.../namespaces/{ns}/{collection}/{name}"""
        name = (obj.get("metadata") or {}).get("name", "")
        return self._request("PUT", self._object_url(kind, name), kind, name, obj)

    def delete(self, kind: ResourceKind, name: str) -> None:
        """DELETE /.../namespaces/{ns}/{collection}/{name}"""
        self._request(
            "DELETE",
            self._object_url(kind, name),
            kind,
            name,
            {"kind": "DeleteOptions", "apiVersion": "v1", "propagationPolicy": "Background"},
        )

    def exists(self, kind: ResourceKind, name: str) -> bool:
        try:
            self.get(kind, name)
        except NotFoundError:
            return False
        return True

    def supports(self, kind: ResourceKind) -> bool:
        """Whether the cluster serves the API group for *kind*.

        Route objects only exist on OpenShift.  The group is probed once and
        the answer is cached for the lifetime of the client.
        """
        prefix = _API_PREFIXES[kind.collection]
        if prefix not in self._supported:
            url = f"{self.api_url}{prefix}"
            logger.debug("GET %s", url)
            try:
                resp = self.session.get(url, timeout=self.DEFAULT_TIMEOUT)
            except requests.RequestException as exc:
                raise ApiError(f"probe {prefix}: {exc}") from exc
            if resp.status_code == 404:
                logger.info("API group %s is not served, skipping %s", prefix, kind.collection)
                self._supported[prefix] = False
            else:
                self._raise_for_status(resp, kind, prefix)
                self._supported[prefix] = True
        return self._supported[prefix]

    # ------------------------------------------------------------------
    # Object helpers
    # ------------------------------------------------------------------

    @staticmethod
    def clean_metadata(
        raw_obj: dict,
        name: str,
        owner_references: list[dict] | None = None,
    ) -> dict:
        """Copy metadata for a create call under *name*.

        Server-managed fields are dropped.  Owner references are replaced
        when *owner_references* is given, otherwise kept from the source.
        """
        raw_meta = raw_obj.get("metadata") or {}
        metadata: dict[str, Any] = {
            k: v for k, v in raw_meta.items()
            if k not in _SERVER_MANAGED_METADATA and k not in ("name", "namespace")
        }
        metadata["name"] = name
        if owner_references is not None:
            metadata["ownerReferences"] = list(owner_references)
        return metadata
