"""Registry records and the derived read views built from them."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, NamedTuple


MAX_PORT = 65535


class Endpoint(NamedTuple):
    """A network-reachable target: ``(address, port)``."""

    address: str
    port: int

    @property
    def key(self) -> str:
        """Canonical ``"address:port"`` form used as the result-map key."""
        return f"{self.address}:{self.port}"


class EndpointStatus(str, Enum):
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    PENDING = "pending"

    @classmethod
    def from_result(cls, reachable: bool | None) -> "EndpointStatus":
        if reachable is None:
            return cls.PENDING
        return cls.REACHABLE if reachable else cls.UNREACHABLE


@dataclass
class Host:
    name: str
    address: str
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Host":
        return cls(
            name=row["name"],
            address=row["address"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class Service:
    """A registered endpoint.

    ``owning_host_name`` is the host's display name at write time; renaming
    the host later does not update it.
    """

    address: str
    port: int
    service_name: str
    owning_host_name: str
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(self.address, self.port)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Service":
        return cls(
            address=row["address"],
            port=int(row["port"]),
            service_name=row["name"],
            owning_host_name=row["host_name"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        """Wire form, using the column names the HTTP API exposes."""
        return {
            "address": self.address,
            "port": self.port,
            "name": self.service_name,
            "host_name": self.owning_host_name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class HostEntry:
    name: str
    ports: dict[int, str] = field(default_factory=dict)


@dataclass
class RegistrySnapshot:
    """All hosts grouped by address, each with its services keyed by port."""

    hosts: dict[str, HostEntry] = field(default_factory=dict)

    @classmethod
    def build(cls, hosts: Iterable[Host], services: Iterable[Service]) -> "RegistrySnapshot":
        snapshot = cls()
        # Hosts first so that hosts with nothing provisioned still appear
        for host in hosts:
            snapshot.hosts[host.address] = HostEntry(name=host.name)
        for svc in services:
            entry = snapshot.hosts.get(svc.address)
            if entry is not None:
                entry.ports[svc.port] = svc.service_name
        return snapshot

    def endpoints(self) -> set[Endpoint]:
        return {
            Endpoint(address, port)
            for address, entry in self.hosts.items()
            for port in entry.ports
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "tailnet_hosts": {
                address: {
                    "name": entry.name,
                    "ports": {str(port): name for port, name in entry.ports.items()},
                }
                for address, entry in self.hosts.items()
            }
        }
