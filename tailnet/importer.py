"""One-time import of a legacy ``config.json`` into the registry.

Expected shape::

    {"tailnet_hosts": {"100.64.0.1": {"name": "nas", "ports": {"8080": "dashboard"}}}}

Rows are upserted, so importing the same file twice is harmless.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from tailnet.registry.models import MAX_PORT
from tailnet.registry.store import RegistryStore

logger = logging.getLogger(__name__)


class ConfigImportError(ValueError):
    """The config file exists but is not in the expected shape."""


def import_config(store: RegistryStore, path: str | Path) -> tuple[int, int]:
    """Upsert every host and service listed in *path*.

    Returns:
        ``(hosts, services)`` imported. ``(0, 0)`` if the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        logger.info("No config file at %s — nothing to import", path)
        return 0, 0

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        tailnet_hosts = data["tailnet_hosts"]
        entries = [
            (address, str(host["name"]), _ports(host))
            for address, host in tailnet_hosts.items()
        ]
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise ConfigImportError(f"Malformed config file {path}: {exc}") from exc

    rows = []
    for address, name, ports in entries:
        valid: dict[int, str] = {}
        for port, service_name in ports.items():
            try:
                port_number = int(port)
            except (TypeError, ValueError):
                port_number = 0
            if not 0 < port_number <= MAX_PORT:
                logger.warning("Skipping %s:%s — not a valid port", address, port)
                continue
            valid[port_number] = str(service_name)
        rows.append((address, name, valid))

    # All rows in a single transaction
    hosts, services = store.bulk_upsert(rows)
    logger.info("Imported %d host(s) and %d service(s) from %s", hosts, services, path)
    return hosts, services


def _ports(host: dict) -> dict:
    ports = host.get("ports") or {}
    if not isinstance(ports, dict):
        raise TypeError(f"ports must be an object, got {type(ports).__name__}")
    return ports
