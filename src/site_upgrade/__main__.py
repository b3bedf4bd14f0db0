"""
Top-level entry point: python -m site_upgrade <subcommand>

Subcommands:
    upgrade     : bring the site up to this release, renaming legacy objects
    status      : show the recorded site version and any upgrade in progress
    restart     : roll the transport deployment
    debug-mode  : set or clear the router debug mode
    annotations : replace the pod annotations of both deployments
    logging     : set per-module router log levels
"""

import sys


USAGE = """\
usage: python -m site_upgrade <command> [options]

commands:
  upgrade      Upgrade the site (use --force-restart to redeploy regardless)
  status       Show site version, library version and upgrade state
  restart      Restart the transport (router) deployment
  debug-mode   Set or clear the router debug mode (QDROUTERD_DEBUG)
  annotations  Replace pod annotations (KEY=VALUE ...)
  logging      Set router log levels (MODULE=LEVEL ...), --restart to apply

Run 'python -m site_upgrade <command> --help' for command-specific options.
"""


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(USAGE)
        sys.exit(0)

    command = sys.argv[1]
    argv = sys.argv[2:]

    if command == "upgrade":
        from .cli import upgrade_main
        upgrade_main(argv)
    elif command == "status":
        from .cli import status_main
        status_main(argv)
    elif command == "restart":
        from .cli import restart_main
        restart_main(argv)
    elif command == "debug-mode":
        from .cli import debug_mode_main
        debug_mode_main(argv)
    elif command == "annotations":
        from .cli import annotations_main
        annotations_main(argv)
    elif command == "logging":
        from .cli import logging_main
        logging_main(argv)
    else:
        print(f"Unknown command: {command}\n")
        print(USAGE)
        sys.exit(1)


if __name__ == "__main__":
    main()
