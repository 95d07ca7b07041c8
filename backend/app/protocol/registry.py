"""Registry of gateway clients keyed by host and port.

Zone devices that address the same gateway must share one socket and one
outbound queue. The registry is an ordinary object owned by the
application lifespan and handed to whoever needs a client.
"""

import logging
from typing import Any, Callable, Iterator, Optional

from .gateway_client import GatewayClient, GatewayTarget

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., GatewayClient]


class ClientRegistry:
    """At most one GatewayClient per GatewayTarget."""

    def __init__(self, client_factory: ClientFactory = GatewayClient):
        self._factory = client_factory
        self._clients: dict[GatewayTarget, GatewayClient] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, target: object) -> bool:
        return target in self._clients

    def __iter__(self) -> Iterator[GatewayClient]:
        return iter(list(self._clients.values()))

    def get(self, target: GatewayTarget) -> Optional[GatewayClient]:
        return self._clients.get(target)

    def get_client(self, host: str, port: Any, **client_kwargs: Any) -> Optional[GatewayClient]:
        """Return the client for host:port, creating it on first use.

        Returns None when host or port is missing. ``client_kwargs`` only
        apply when the client is created; later callers get the existing
        instance unchanged.
        """
        if not host or not port:
            return None
        target = GatewayTarget(str(host), int(port))
        # No await between lookup and insert, so concurrent callers on the
        # event loop always see the same instance.
        client = self._clients.get(target)
        if client is None:
            client = self._factory(target.host, target.port, **client_kwargs)
            self._clients[target] = client
            logger.debug("Created gateway client for %s", target)
        return client

    async def async_remove(self, target: GatewayTarget) -> bool:
        """Drop and close the client for a target. Returns False if none existed."""
        client = self._clients.pop(target, None)
        if client is None:
            return False
        await client.aclose()
        logger.debug("Removed gateway client for %s", target)
        return True

    async def async_close_all(self) -> None:
        """Close every client; called on application shutdown."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.aclose()
