"""
CLI entry points for the upgrade, status and router maintenance subcommands.

Each subcommand parses its own arguments, loads the YAML configuration,
sets up logging and talks to the site's namespace through ``KubeClient``.
Failures are logged and turn into exit code 1; an interrupted upgrade
leaves its marker behind, so running ``upgrade`` again resumes it.
"""

from __future__ import annotations

import argparse
import logging
import sys

import requests

from . import __version__
from .certs import CertificateError
from .client import ApiError, KubeClient, NotFoundError
from .config import DEFAULT_CONFIG_PATH, ConfigError, Settings, load_config, validate_k8s_name
from .logging_setup import setup_logging
from .models import TRANSPORT_CONFIG_MAP_NAME, ResourceKind
from .site_config import RouterConfig, SiteConfigError
from .upgrade import UpgradeError, UpgradeOrchestrator
from .upgrade.credentials import CredentialError
from .upgrade.settings import (
    restart_transport,
    update_annotations,
    update_debug_mode,
    update_router_logging,
)
from .upgrade.state import UpgradeStateTracker
from .versions import Relation, compare

logger = logging.getLogger(__name__)

# Errors that abort a command with exit code 1.
_FATAL_ERRORS = (
    UpgradeError,
    ApiError,
    SiteConfigError,
    CredentialError,
    CertificateError,
    requests.RequestException,
)

_RELATION_TEXT = {
    Relation.LESS: "older than the site (cannot update)",
    Relation.MORE: "newer than the site",
    Relation.EQUIVALENT: "equivalent to the site",
    Relation.EQUAL: "the same as the site",
}


# ------------------------------------------------------------------
# Argument parsing
# ------------------------------------------------------------------

def _parser(prog: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description=description)
    parser.add_argument(
        "--config",
        "-c",
        default=DEFAULT_CONFIG_PATH,
        help="Path to YAML config file (default: config/config.yaml)",
    )
    parser.add_argument(
        "--namespace",
        "-n",
        default="",
        help="Namespace of the site (overrides cluster.namespace from the config)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    return parser


def _setup(args: argparse.Namespace, log_prefix: str) -> tuple[Settings, KubeClient, str]:
    log_path = setup_logging(verbose=args.verbose, log_prefix=log_prefix)
    try:
        settings = load_config(args.config)
        if args.namespace:
            validate_k8s_name(args.namespace, "--namespace")
            settings.cluster.namespace = args.namespace
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(1)

    cluster = settings.cluster
    client = KubeClient(cluster.api_url, cluster.token, cluster.namespace, verify=cluster.verify)
    return settings, client, log_path


# ------------------------------------------------------------------
# Subcommands
# ------------------------------------------------------------------

def upgrade_main(argv: list[str] | None = None) -> None:
    parser = _parser(
        "site_upgrade upgrade",
        "Upgrade the site in a namespace to this release, renaming legacy objects if needed.",
    )
    parser.add_argument(
        "--force-restart",
        action="store_true",
        help="Redeploy both workloads even when nothing changed",
    )
    args = parser.parse_args(argv)
    settings, client, log_path = _setup(args, "upgrade")

    print(f"Namespace:        {settings.cluster.namespace}")
    print(f"Library version:  {__version__}")
    print(f"Log file:         {log_path}")
    print()

    try:
        result = UpgradeOrchestrator(client, settings).run(force_restart=args.force_restart)
    except _FATAL_ERRORS as exc:
        logger.error("Upgrade failed: %s", exc)
        sys.exit(1)

    if not result.updated:
        print("No update required")
        return

    print(f"Site updated to {__version__}")
    if result.plan.rename:
        print(f"  Objects created:      {len(result.migrated)}")
        print(f"  Already present:      {len(result.skipped)}")
        print(f"  Legacy objects removed: {len(result.deleted)}")
        for label in result.retained:
            print(f"  Retained: {label} (referenced by previously issued tokens)")
    print(f"  Transport redeployed: {'yes' if result.transport_updated else 'no'}")
    print(f"  Controller redeployed: {'yes' if result.controller_updated else 'no'}")


def status_main(argv: list[str] | None = None) -> None:
    parser = _parser("site_upgrade status", "Show the recorded site version and upgrade state.")
    args = parser.parse_args(argv)
    settings, client, _ = _setup(args, "status")

    try:
        config_map = client.get(ResourceKind.CONFIG_MAP, TRANSPORT_CONFIG_MAP_NAME)
        site = RouterConfig.from_config_map(config_map).site_metadata()
        status = UpgradeStateTracker(client).status()
    except NotFoundError:
        print(f"No site found in namespace '{settings.cluster.namespace}'")
        sys.exit(1)
    except _FATAL_ERRORS as exc:
        logger.error("Status failed: %s", exc)
        sys.exit(1)

    print(f"Namespace:        {settings.cluster.namespace}")
    print(f"Site id:          {site.id or '(unset)'}")
    print(f"Site version:     {site.version or '(unset)'}")
    print(f"Library version:  {__version__}")
    print(f"Library is:       {_RELATION_TEXT[compare(__version__, site.version)]}")
    if status.in_progress:
        print(f"Upgrade:          IN PROGRESS (from {status.original_version})")
    else:
        print("Upgrade:          none in progress")


def restart_main(argv: list[str] | None = None) -> None:
    parser = _parser("site_upgrade restart", "Roll the site's transport deployment.")
    args = parser.parse_args(argv)
    _, client, _ = _setup(args, "restart")

    try:
        restart_transport(client)
    except _FATAL_ERRORS as exc:
        logger.error("Restart failed: %s", exc)
        sys.exit(1)
    print("Transport restarted")


def _key_values(parser: argparse.ArgumentParser, pairs: list[str]) -> dict[str, str]:
    """Turn ``KEY=VALUE`` arguments into a dict; ``KEY=`` maps to an empty value."""
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            parser.error(f"expected KEY=VALUE, got '{pair}'")
        result[key] = value
    return result


def debug_mode_main(argv: list[str] | None = None) -> None:
    parser = _parser("site_upgrade debug-mode", "Set or clear the router debug mode.")
    parser.add_argument(
        "mode",
        nargs="?",
        default="",
        help="Debug mode such as 'gdb' or 'asan' (omit to clear it)",
    )
    args = parser.parse_args(argv)
    _, client, _ = _setup(args, "debug-mode")

    try:
        changed = update_debug_mode(client, args.mode)
    except _FATAL_ERRORS as exc:
        logger.error("Debug mode update failed: %s", exc)
        sys.exit(1)
    if not changed:
        print("Router debug mode unchanged")
    elif args.mode:
        print(f"Router debug mode set to {args.mode}")
    else:
        print("Router debug mode cleared")


def annotations_main(argv: list[str] | None = None) -> None:
    parser = _parser(
        "site_upgrade annotations",
        "Replace the pod annotations of the transport and controller deployments.",
    )
    parser.add_argument(
        "annotations",
        nargs="*",
        metavar="KEY=VALUE",
        help="Annotations to set (none clears all but the transport's scrape annotations)",
    )
    args = parser.parse_args(argv)
    annotations = _key_values(parser, args.annotations)
    _, client, _ = _setup(args, "annotations")

    try:
        changed = update_annotations(client, annotations)
    except _FATAL_ERRORS as exc:
        logger.error("Annotation update failed: %s", exc)
        sys.exit(1)
    print("Pod annotations updated" if changed else "Pod annotations unchanged")


def logging_main(argv: list[str] | None = None) -> None:
    parser = _parser("site_upgrade logging", "Set per-module router log levels.")
    parser.add_argument(
        "levels",
        nargs="+",
        metavar="MODULE=LEVEL",
        help="Log level per router module, e.g. DEFAULT=info+ (MODULE= removes the entry)",
    )
    parser.add_argument(
        "--restart",
        action="store_true",
        help="Restart the transport so the router picks up the new levels",
    )
    args = parser.parse_args(argv)
    levels = _key_values(parser, args.levels)
    _, client, _ = _setup(args, "logging")

    try:
        changed = update_router_logging(client, levels, restart=args.restart)
    except _FATAL_ERRORS as exc:
        logger.error("Router logging update failed: %s", exc)
        sys.exit(1)
    if not changed:
        print("Router logging unchanged")
        return
    print("Router logging updated")
    if args.restart:
        print("Transport restarted")
