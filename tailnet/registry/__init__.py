"""tailnet.registry — host/service registry and reachability probing.

Exports:
    Host, Service       — persisted records
    Endpoint            — ``(address, port)`` probe target
    EndpointStatus      — reachable / unreachable / pending
    RegistrySnapshot    — hosts grouped by address with their ports
    RegistryStore       — SQLite-backed persistence
    ReachabilityProber  — concurrent TCP connect prober
    RegistryService     — orchestration used by the API and CLI
"""

from __future__ import annotations

from tailnet.registry.models import (
    Endpoint,
    EndpointStatus,
    Host,
    HostEntry,
    RegistrySnapshot,
    Service,
)
from tailnet.registry.prober import ReachabilityProber
from tailnet.registry.service import RegistryService
from tailnet.registry.store import RegistryStore, StoreError

__all__ = [
    "Endpoint",
    "EndpointStatus",
    "Host",
    "HostEntry",
    "RegistrySnapshot",
    "Service",
    "ReachabilityProber",
    "RegistryService",
    "RegistryStore",
    "StoreError",
]
