"""Tests for the in-memory zone state store."""

import asyncio

import pytest


class TestZoneStateStore:
    def test_initial_zones(self, store):
        snapshot = store.snapshot()
        assert [z["zone"] for z in snapshot] == [1, 2, 3, 4, 5, 6]
        assert snapshot[0]["power"] is None

    def test_gateway_update(self, store):
        store.on_zone_event(2, "volume", 0.45)
        state = store.get(2)
        assert state.volume == 0.45
        assert state.updated_at is not None

    def test_last_write_wins(self, store):
        store.apply_optimistic(1, "power", True)
        store.on_zone_event(1, "power", False)
        assert store.get(1).power is False

    def test_unknown_zone_or_field_ignored(self, store):
        store.on_zone_event(0, "power", True)
        store.on_zone_event(7, "power", True)
        store.on_zone_event(1, "reverb", 3)
        assert store.get(0) is None
        assert not hasattr(store.get(1), "reverb")

    def test_write_without_loop_does_not_broadcast(self, store):
        calls = []

        async def callback(message):
            calls.append(message)

        store.set_broadcast_callback(callback)
        store.on_zone_event(1, "mute", True)
        assert calls == []
        assert store.get(1).mute is True

    @pytest.mark.asyncio
    async def test_broadcast_message(self, store):
        messages = []

        async def callback(message):
            messages.append(message)

        store.set_broadcast_callback(callback)
        store.on_zone_event(3, "source", "2")
        store.apply_optimistic(3, "power", True)
        await asyncio.sleep(0.01)
        assert messages == [
            {"type": "zone_update", "data": {"zone": 3, "field": "source", "value": "2", "source": "gateway"}},
            {"type": "zone_update", "data": {"zone": 3, "field": "power", "value": True, "source": "command"}},
        ]
