"""Reachability prober — concurrent bare TCP connects against endpoints.

A probe succeeds when the TCP handshake completes; the connection is closed
straight away and nothing is sent. Every failure (refused, timed out,
unroutable, unresolvable name, invalid port) is reported as ``False``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from tailnet.config import DEFAULT_PROBE_TIMEOUT
from tailnet.registry.models import Endpoint, EndpointStatus

logger = logging.getLogger(__name__)


class ReachabilityProber:
    """Stateless between calls; each :meth:`probe_all` round is independent.

    Args:
        timeout: Per-probe connect timeout in seconds. Because all probes of
                 a round run in parallel this also bounds the round itself.
    """

    def __init__(self, timeout: float = DEFAULT_PROBE_TIMEOUT) -> None:
        self.timeout = timeout

    # ------------------------------------------------------------------ #
    # Public API                                                           #
    # ------------------------------------------------------------------ #

    async def probe(self, address: str, port: int) -> bool:
        """Try a single TCP connect to ``address:port``. Never raises."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(address, port),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.debug("TCP probe timed out: %s:%s", address, port)
            return False
        except Exception as exc:
            logger.debug("TCP probe failed: %s:%s (%s)", address, port, exc)
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except Exception:
            pass
        logger.debug("TCP probe OK: %s:%s", address, port)
        return True

    async def probe_all(self, endpoints: Iterable[Endpoint | tuple[str, int]]) -> dict[str, bool]:
        """Probe every endpoint concurrently and wait for all of them.

        Returns:
            One ``"address:port" -> reachable`` entry per distinct endpoint.
        """
        targets = sorted({Endpoint(*ep) for ep in endpoints})
        if not targets:
            return {}

        results = await asyncio.gather(
            *(self.probe(ep.address, ep.port) for ep in targets),
            return_exceptions=True,
        )
        reachability = {
            ep.key: result is True
            for ep, result in zip(targets, results)
        }
        up = sum(reachability.values())
        logger.info("probe round complete — %d/%d endpoint(s) reachable", up, len(targets))
        return reachability

    # ------------------------------------------------------------------ #
    # Status helpers                                                       #
    # ------------------------------------------------------------------ #

    @staticmethod
    def pending(endpoints: Iterable[Endpoint | tuple[str, int]]) -> dict[str, EndpointStatus]:
        """Status map for a round that has not been probed yet."""
        return {Endpoint(*ep).key: EndpointStatus.PENDING for ep in endpoints}

    @staticmethod
    def statuses(results: dict[str, bool]) -> dict[str, EndpointStatus]:
        return {key: EndpointStatus.from_result(ok) for key, ok in results.items()}
