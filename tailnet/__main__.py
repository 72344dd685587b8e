"""Tailnet Discovery command-line entry point.

Usage::

    python -m tailnet serve [--host HOST] [--port PORT] [--db PATH]
    python -m tailnet import-config config.json [--db PATH]
    python -m tailnet check ADDRESS PORT
    python -m tailnet status [--db PATH]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from tailnet.config import Settings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m tailnet",
        description="Tailnet service registry and reachability checks",
    )
    parser.add_argument(
        "--db",
        metavar="PATH",
        type=Path,
        default=None,
        help="Database file (default: TAILNET_DB_PATH or <TAILNET_DATA_DIR>/services.db)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-probe timeout in seconds (default: TAILNET_PROBE_TIMEOUT or 2.0)",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", dest="bind_host", default=None)
    serve.add_argument("--port", dest="bind_port", type=int, default=None)
    serve.add_argument(
        "--import-config",
        metavar="PATH",
        type=Path,
        default=None,
        help="Import a legacy config.json on startup",
    )

    imp = sub.add_parser("import-config", help="Import a legacy config.json into the registry")
    imp.add_argument("path", type=Path)

    check = sub.add_parser("check", help="Probe a single endpoint")
    check.add_argument("address")
    check.add_argument("port", type=int)

    status = sub.add_parser("status", help="Probe every registered endpoint")
    status.add_argument(
        "--no-probe",
        action="store_true",
        help="List endpoints as pending without probing them",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = Settings.from_env().with_overrides(
        db_path=args.db,
        probe_timeout=args.timeout,
        log_level=args.log_level.upper() if args.log_level else None,
        host=getattr(args, "bind_host", None),
        port=getattr(args, "bind_port", None),
        import_path=getattr(args, "import_config", None),
    )
    logging.basicConfig(level=settings.log_level, format="%(levelname)s: %(message)s")

    from tailnet.registry import EndpointStatus, ReachabilityProber, RegistryService, RegistryStore

    if args.command == "serve":
        from tailnet.server import main as serve

        serve(settings)
        return 0

    prober = ReachabilityProber(settings.probe_timeout)
    if args.command == "check":
        reachable = asyncio.run(prober.probe(args.address, args.port))
        print(json.dumps({"reachable": reachable}))
        return 0 if reachable else 1

    store = RegistryStore.open(settings.db_path)
    try:
        if args.command == "import-config":
            from tailnet.importer import ConfigImportError, import_config

            try:
                hosts, services = import_config(store, args.path)
            except ConfigImportError as exc:
                print(f"error: {exc}", file=sys.stderr)
                return 2
            print(f"Imported {hosts} host(s) and {services} service(s)")
            return 0

        service = RegistryService(store, prober)
        board = asyncio.run(service.get_status_board(probe=not args.no_probe))
        snapshot = service.get_snapshot()
        for address, entry in snapshot.hosts.items():
            print(f"{entry.name} ({address})")
            for port, name in sorted(entry.ports.items()):
                status = board.get(f"{address}:{port}", EndpointStatus.PENDING).value
                print(f"  {port:>5}  {status:<11}  {name}")
        return 0
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
