"""RPC endpoint selection with a single cached, health-probed connection.

The selector walks an ordered list of endpoint candidates and keeps the
first one that answers both liveness probes. The cached connection is
re-probed on every ``acquire()`` and dropped as soon as a probe fails.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment

from walletless_checkout.config import CheckoutConfig
from walletless_checkout.errors import NoEndpointAvailableError

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[str], AsyncClient]


def default_connection_factory(commitment: str, user_agent: str) -> ConnectionFactory:
    """Return a factory building solana-py async clients for an endpoint."""

    def _build(endpoint: str) -> AsyncClient:
        return AsyncClient(
            endpoint,
            commitment=Commitment(commitment),
            extra_headers={"User-Agent": user_agent},
        )

    return _build


async def _close_quietly(connection: AsyncClient | None, endpoint: str | None) -> None:
    if connection is None:
        return
    try:
        await connection.close()
    except Exception:
        logger.debug("Closing connection to %s failed.", endpoint)


class ConnectionCache:
    """Holds at most one live (endpoint, connection) pair.

    The slot is replaced or emptied as a whole, so readers never see an
    endpoint paired with another endpoint's connection. ``lock`` serializes
    selection passes across concurrent requests.
    """

    def __init__(self) -> None:
        self._endpoint: str | None = None
        self._connection: AsyncClient | None = None
        self.lock = asyncio.Lock()

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def connection(self) -> AsyncClient | None:
        return self._connection

    def swap(self, endpoint: str, connection: AsyncClient) -> tuple[str | None, AsyncClient | None]:
        """Install a new entry, returning the previous one."""
        previous = (self._endpoint, self._connection)
        self._endpoint, self._connection = endpoint, connection
        return previous

    def clear(self) -> tuple[str | None, AsyncClient | None]:
        """Empty the slot, returning what it held."""
        previous = (self._endpoint, self._connection)
        self._endpoint, self._connection = None, None
        return previous

    def discard(self, connection: AsyncClient) -> str | None:
        """Empty the slot only if it still holds ``connection``.

        Returns the endpoint that was dropped, or None if the slot had
        already moved on to another connection.
        """
        if self._connection is not connection:
            return None
        endpoint, _ = self.clear()
        return endpoint


class EndpointSelector:
    """Produces a verified RPC connection from an ordered candidate list.

    - ``acquire()`` probes the cached connection (``get_slot``) and returns it
      if alive; otherwise it runs one selection pass over the candidates.
    - A candidate is accepted when ``get_slot`` and ``get_version`` both
      succeed; they are issued concurrently.
    - The first accepted candidate is cached and no later candidate is tried.
    - If none is accepted, ``NoEndpointAvailableError`` (503) is raised.
    """

    def __init__(
        self,
        endpoints: list[str] | tuple[str, ...],
        *,
        cache: ConnectionCache | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self._endpoints = tuple(endpoints)
        self._cache = cache if cache is not None else ConnectionCache()
        self._factory = connection_factory or default_connection_factory("confirmed", "walletless-checkout")

    @classmethod
    def from_config(cls, config: CheckoutConfig, cache: ConnectionCache | None = None) -> EndpointSelector:
        return cls(
            config.rpc_endpoints,
            cache=cache,
            connection_factory=default_connection_factory(config.commitment, config.user_agent),
        )

    @property
    def endpoints(self) -> tuple[str, ...]:
        return self._endpoints

    @property
    def current_endpoint(self) -> str | None:
        return self._cache.endpoint

    async def acquire(self) -> AsyncClient:
        """Return a live connection, re-selecting if the cached one fails."""
        async with self._cache.lock:
            cached = self._cache.connection
            if cached is not None:
                endpoint = self._cache.endpoint
                try:
                    await cached.get_slot()
                    logger.info("Using cached connection: %s", endpoint)
                    return cached
                except Exception as exc:
                    logger.warning(
                        "Cached connection failed, trying new endpoints: %s (%s)",
                        endpoint, exc,
                    )
                    self._cache.clear()
                    await _close_quietly(cached, endpoint)

            return await self._select()

    async def _select(self) -> AsyncClient:
        for endpoint in self._endpoints:
            logger.info("Testing RPC endpoint: %s", endpoint)
            connection = self._factory(endpoint)
            try:
                slot, version = await asyncio.gather(
                    connection.get_slot(),
                    connection.get_version(),
                )
            except Exception as exc:
                logger.warning("RPC endpoint failed: %s (%s)", endpoint, exc)
                await _close_quietly(connection, endpoint)
                continue

            logger.info(
                "RPC endpoint working: %s (slot=%s, version=%s)",
                endpoint, slot.value, version.value.solana_core,
            )
            self._cache.swap(endpoint, connection)
            return connection

        logger.error("No working RPC endpoints found (tried %d).", len(self._endpoints))
        raise NoEndpointAvailableError(
            "Failed to connect to Solana network",
            details={
                "details": "All RPC endpoints are currently unavailable",
                "triedEndpoints": list(self._endpoints),
            },
        )

    async def invalidate(self, connection: AsyncClient) -> None:
        """Report ``connection`` as failed so the next ``acquire()`` re-selects.

        A no-op when the cache already holds a different connection: another
        request has re-selected since ``connection`` was handed out, and the
        fresh connection must stay open for whoever is using it.
        """
        async with self._cache.lock:
            endpoint = self._cache.discard(connection)
        if endpoint is None:
            logger.debug("Stale invalidate ignored; cache already moved on.")
            return
        logger.info("Invalidated cached connection: %s", endpoint)
        await _close_quietly(connection, endpoint)

    async def close(self) -> None:
        """Close the cached connection, if any."""
        async with self._cache.lock:
            endpoint, connection = self._cache.clear()
        await _close_quietly(connection, endpoint)
