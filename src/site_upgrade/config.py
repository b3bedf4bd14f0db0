"""
Configuration loading and validation for the site upgrade tool.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from . import __version__

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "PROJECT_ROOT",
    "ClusterConfig",
    "ConfigError",
    "ImageConfig",
    "Settings",
    "UpgradeConfig",
    "load_config",
    "parse_settings",
    "validate_k8s_name",
]

# Kubernetes namespace / object names: RFC 1123 label, 1-63 chars.
_K8S_NAME_RE = re.compile(r"^[a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?$")

logger = logging.getLogger(__name__)

# Project root directory
PROJECT_ROOT = os.path.dirname(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
)

# Default config path, relative to the project root
DEFAULT_CONFIG_PATH = os.path.join(PROJECT_ROOT, "config", "config.yaml")

IN_CLUSTER_TOKEN_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/token"
IN_CLUSTER_API_URL = "https://kubernetes.default.svc"

# Image overrides honoured by earlier releases of the site tooling.
ROUTER_IMAGE_ENV = "QDROUTERD_IMAGE"
CONTROLLER_IMAGE_ENV = "SKUPPER_SERVICE_CONTROLLER_IMAGE"

DEFAULT_ROUTER_IMAGE = "quay.io/skupper/qdrouterd:0.4"
DEFAULT_CONTROLLER_IMAGE = f"quay.io/skupper/service-controller:{__version__}"


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


@dataclass
class ClusterConfig:
    """Where the site lives and how to reach its API server."""

    api_url: str = IN_CLUSTER_API_URL
    token: str = ""
    namespace: str = "default"
    ca_file: str = ""
    verify_tls: bool = True

    @property
    def verify(self) -> bool | str:
        """Value for ``requests.Session.verify``."""
        if not self.verify_tls:
            return False
        return self.ca_file or True

    def __repr__(self) -> str:
        """Redact the bearer token in repr output."""
        token_display = self.token[:4] + "..." if self.token else "(empty)"
        return (
            f"ClusterConfig(api_url={self.api_url!r}, token={token_display!r}, "
            f"namespace={self.namespace!r})"
        )


@dataclass
class ImageConfig:
    router: str = DEFAULT_ROUTER_IMAGE
    controller: str = DEFAULT_CONTROLLER_IMAGE


@dataclass
class UpgradeConfig:
    # Bounded wait for a load balancer to be assigned an external address.
    wait_attempts: int = 120
    wait_interval: float = 1.0


@dataclass
class Settings:
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    images: ImageConfig = field(default_factory=ImageConfig)
    upgrade: UpgradeConfig = field(default_factory=UpgradeConfig)


def validate_k8s_name(name: str, label: str = "name") -> None:
    """Validate that *name* is a legal Kubernetes namespace / object name.

    Raises:
        ConfigError: If the name is invalid.
    """
    if not name or not _K8S_NAME_RE.match(name):
        raise ConfigError(
            f"Invalid {label}: {name!r}: must be 1-63 characters, "
            f"lowercase alphanumeric or hyphens, starting and ending alphanumeric."
        )


def _read_token(cluster_cfg: dict) -> str:
    token = (cluster_cfg.get("token") or "").strip()
    if token:
        return token
    token_file = (cluster_cfg.get("token_file") or "").strip()
    if not token_file and os.path.isfile(IN_CLUSTER_TOKEN_FILE):
        token_file = IN_CLUSTER_TOKEN_FILE
    if not token_file:
        return ""
    try:
        with open(token_file, "r", encoding="utf-8") as f:
            return f.read().strip()
    except OSError as exc:
        raise ConfigError(f"Cannot read token file {token_file}: {exc}") from exc


def parse_settings(cfg: dict, environ: dict[str, str] | None = None) -> Settings:
    """Build validated ``Settings`` from a parsed YAML document.

    Image environment variables take precedence over the config file.
    """
    env = os.environ if environ is None else environ
    cluster_raw = cfg.get("cluster", {}) or {}
    images_raw = cfg.get("images", {}) or {}
    upgrade_raw = cfg.get("upgrade", {}) or {}

    token = _read_token(cluster_raw)
    if not token or token.startswith("your-") or token == "REPLACE_WITH_YOUR_TOKEN":
        raise ConfigError("Missing or placeholder values in config: cluster.token")

    cluster = ClusterConfig(
        api_url=(cluster_raw.get("api_url") or IN_CLUSTER_API_URL).strip(),
        token=token,
        namespace=(cluster_raw.get("namespace") or "default").strip(),
        ca_file=(cluster_raw.get("ca_file") or "").strip(),
        verify_tls=bool(cluster_raw.get("verify_tls", True)),
    )
    validate_k8s_name(cluster.namespace, "cluster.namespace")

    images = ImageConfig(
        router=env.get(ROUTER_IMAGE_ENV) or images_raw.get("router") or DEFAULT_ROUTER_IMAGE,
        controller=(
            env.get(CONTROLLER_IMAGE_ENV)
            or images_raw.get("controller")
            or DEFAULT_CONTROLLER_IMAGE
        ),
    )

    try:
        upgrade = UpgradeConfig(
            wait_attempts=int(upgrade_raw.get("wait_attempts", 120)),
            wait_interval=float(upgrade_raw.get("wait_interval", 1.0)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid upgrade settings: {exc}") from exc
    if upgrade.wait_attempts < 1:
        raise ConfigError("upgrade.wait_attempts must be at least 1")
    if upgrade.wait_interval < 0:
        raise ConfigError("upgrade.wait_interval must not be negative")

    return Settings(cluster=cluster, images=images, upgrade=upgrade)


def load_config(config_path: str, environ: dict[str, str] | None = None) -> Settings:
    """Load and validate the YAML configuration file.

    Raises:
        ConfigError: If the config file is missing or contains placeholder values.
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(
            f"Config file not found: {config_path}\n"
            "Copy config/config.yaml.example to config/config.yaml and fill in your values."
        )

    with open(path, "r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ConfigError(f"Config file is empty or not a mapping: {config_path}")

    settings = parse_settings(cfg, environ)
    logger.debug("Config loaded from %s: %r", config_path, settings.cluster)
    return settings
