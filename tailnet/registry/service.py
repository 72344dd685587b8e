"""Registry service — the operation set the HTTP layer and CLI call into."""

from __future__ import annotations

import logging

from tailnet.registry.models import EndpointStatus, Host, RegistrySnapshot, Service
from tailnet.registry.prober import ReachabilityProber
from tailnet.registry.store import RegistryStore

logger = logging.getLogger(__name__)


class RegistryService:
    """Composes a :class:`RegistryStore` and a :class:`ReachabilityProber`.

    "Not found" outcomes are returned as ``False`` / ``None``; only storage
    faults (:class:`~tailnet.registry.store.StoreError`) propagate.
    """

    def __init__(self, store: RegistryStore, prober: ReachabilityProber | None = None) -> None:
        self.store = store
        self.prober = prober or ReachabilityProber()

    # ── Mutations ─────────────────────────────────────────────────

    def create_or_update_service(self, address: str, port: int, name: str, host_name: str) -> Service:
        return self.store.upsert_service(address, port, name, host_name)

    def create_or_update_host(self, name: str, address: str) -> Host:
        return self.store.upsert_host(name, address)

    def delete_service(self, address: str, port: int) -> bool:
        return self.store.delete_service(address, port)

    def delete_host(self, address: str) -> bool:
        return self.store.delete_host(address)

    # ── Reads ─────────────────────────────────────────────────────

    def check_service_conflict(self, address: str, port: int) -> Service | None:
        """Return the service already registered on ``(address, port)``, if any.

        Edit forms use this to warn that a port is taken; whether the hit is
        the record being edited is for the caller to decide.
        """
        return self.store.get_service(address, port)

    def list_hosts(self) -> list[Host]:
        return self.store.list_hosts()

    def get_snapshot(self) -> RegistrySnapshot:
        return self.store.snapshot()

    # ── Reachability ──────────────────────────────────────────────

    async def get_reachability(self) -> dict[str, bool]:
        """Probe every registered endpoint. Recomputed in full on each call."""
        endpoints = self.store.snapshot().endpoints()
        return await self.prober.probe_all(endpoints)

    async def get_status_board(self, probe: bool = True) -> dict[str, EndpointStatus]:
        """Status of every registered endpoint.

        With *probe* false nothing is probed and every endpoint is reported
        as pending, the state a dashboard shows before its first round.
        """
        if not probe:
            return self.prober.pending(self.store.snapshot().endpoints())
        return self.prober.statuses(await self.get_reachability())

    async def check_single_endpoint(self, address: str, port: int) -> bool:
        """Probe ``address:port`` directly; it need not be registered."""
        return await self.prober.probe(address, port)
