"""In-place upgrade of a deployed application-network site."""

__version__ = "0.6.0"

__all__ = [
    "certs",
    "cli",
    "client",
    "config",
    "logging_setup",
    "models",
    "site_config",
    "upgrade",
    "versions",
]
