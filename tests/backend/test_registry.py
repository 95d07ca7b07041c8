"""Tests for the per-address client registry."""

import asyncio

import pytest

from app.protocol.gateway_client import GatewayClient, GatewayTarget
from app.protocol.registry import ClientRegistry


class TestClientRegistry:
    def test_same_address_shares_one_client(self):
        registry = ClientRegistry()
        first = registry.get_client("10.0.0.5", 9621)
        second = registry.get_client("10.0.0.5", "9621")
        assert first is second
        assert isinstance(first, GatewayClient)
        assert len(registry) == 1

    def test_different_addresses_get_different_clients(self):
        registry = ClientRegistry()
        a = registry.get_client("10.0.0.5", 9621)
        b = registry.get_client("10.0.0.6", 9621)
        c = registry.get_client("10.0.0.5", 9622)
        assert len({id(a), id(b), id(c)}) == 3

    def test_missing_host_or_port_returns_none(self):
        registry = ClientRegistry()
        assert registry.get_client("", 9621) is None
        assert registry.get_client("10.0.0.5", 0) is None
        assert registry.get_client(None, None) is None
        assert len(registry) == 0

    def test_options_only_apply_on_creation(self):
        sink_a = lambda *args: None  # noqa: E731
        sink_b = lambda *args: None  # noqa: E731
        registry = ClientRegistry()
        first = registry.get_client("h", 1, on_zone_event=sink_a)
        second = registry.get_client("h", 1, on_zone_event=sink_b)
        assert second is first
        assert second.on_zone_event is sink_a

    def test_lookup_by_target(self):
        registry = ClientRegistry()
        client = registry.get_client("h", 1)
        target = GatewayTarget("h", 1)
        assert target in registry
        assert registry.get(target) is client
        assert list(registry) == [client]

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_instance(self):
        registry = ClientRegistry()

        async def lookup():
            await asyncio.sleep(0)
            return registry.get_client("h", 1)

        results = await asyncio.gather(*(lookup() for _ in range(10)))
        assert all(r is results[0] for r in results)

    @pytest.mark.asyncio
    async def test_remove_and_close_all(self, recording_client_factory):
        registry = ClientRegistry(recording_client_factory)
        a = registry.get_client("h", 1)
        b = registry.get_client("h", 2)
        assert await registry.async_remove(a.target) is True
        assert a.closed
        assert await registry.async_remove(a.target) is False
        await registry.async_close_all()
        assert b.closed
        assert len(registry) == 0
