"""Tests for the gateway TCP client against a local fake gateway."""

import asyncio
import time

import pytest
import pytest_asyncio

from app.protocol.gateway_client import (
    ConnectError,
    ConnectionState,
    GatewayClient,
)


class FakeGateway:
    """Minimal TCP server recording what the client writes."""

    def __init__(self):
        self.received = bytearray()
        self.arrivals: list[float] = []
        self.writers: list[asyncio.StreamWriter] = []
        self.connections = 0
        self.open_connections = 0
        self.server = None
        self.port = 0

    async def start(self):
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]
        return self

    async def _handle(self, reader, writer):
        self.connections += 1
        self.open_connections += 1
        self.writers.append(writer)
        try:
            while True:
                data = await reader.read(1024)
                if not data:
                    break
                self.received.extend(data)
                self.arrivals.append(time.monotonic())
        except OSError:
            pass
        finally:
            self.open_connections -= 1
            writer.close()

    async def send(self, data: bytes):
        writer = self.writers[-1]
        writer.write(data)
        await writer.drain()

    def drop_clients(self):
        for writer in self.writers:
            writer.close()

    async def stop(self):
        self.drop_clients()
        self.server.close()
        await self.server.wait_closed()


class BrokenWriter:
    """StreamWriter stand-in whose drain() fails like a reset socket."""

    def __init__(self):
        self.written = []
        self.closed = False

    def write(self, data):
        self.written.append(data)

    async def drain(self):
        raise ConnectionResetError("connection reset by peer")

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass

    def get_extra_info(self, name, default=None):
        return default


async def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def gateway():
    fake = await FakeGateway().start()
    yield fake
    await fake.stop()


def _client(port, **kwargs):
    kwargs.setdefault("command_spacing", 0.01)
    kwargs.setdefault("reconnect_delays", (0.05,))
    return GatewayClient("127.0.0.1", port, **kwargs)


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, gateway):
        client = _client(gateway.port)
        await client.connect()
        assert client.state is ConnectionState.CONNECTED
        assert client.is_connected
        await client.aclose()
        assert client.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_connect_when_connected_is_noop(self, gateway):
        client = _client(gateway.port)
        await client.connect()
        await client.connect()
        await wait_until(lambda: gateway.connections == 1)
        await asyncio.sleep(0.05)
        assert gateway.connections == 1
        await client.aclose()

    @pytest.mark.asyncio
    async def test_missing_host_returns_without_connecting(self):
        client = GatewayClient("", 0)
        await client.connect()
        assert client.state is ConnectionState.DISCONNECTED
        assert not client.reconnect_pending

    @pytest.mark.asyncio
    async def test_refused_connect_raises_and_schedules_reconnect(self, gateway):
        port = gateway.port
        await gateway.stop()
        client = _client(port, reconnect_delays=(10.0,))
        with pytest.raises(ConnectError):
            await client.connect()
        assert client.state is ConnectionState.DISCONNECTED
        assert client.reconnect_attempt == 1
        assert client.reconnect_pending
        client.disconnect()
        assert not client.reconnect_pending
        assert client.reconnect_attempt == 0


    @pytest.mark.asyncio
    async def test_connect_while_connecting_rejected(self, gateway):
        client = _client(gateway.port)
        first = asyncio.create_task(client.connect())
        await asyncio.sleep(0)
        assert client.state is ConnectionState.CONNECTING
        with pytest.raises(ConnectError, match="already in progress"):
            await client.connect()
        await first
        assert client.is_connected
        await asyncio.sleep(0.05)
        assert gateway.connections == 1
        await client.aclose()

    @pytest.mark.asyncio
    async def test_disconnect_during_handshake_then_reconnect(self, gateway):
        client = _client(gateway.port)
        first = asyncio.create_task(client.connect())
        await asyncio.sleep(0)
        client.disconnect()
        second = asyncio.create_task(client.connect())
        results = await asyncio.gather(first, second, return_exceptions=True)

        assert isinstance(results[0], ConnectError)
        assert results[1] is None
        assert client.is_connected
        await asyncio.sleep(0.1)
        assert gateway.open_connections == 1
        client.set_power(1, True)
        await wait_until(lambda: bytes(gateway.received) == b"!1,1,1\r")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_disconnect_aborts_handshake(self, gateway):
        client = _client(gateway.port)
        first = asyncio.create_task(client.connect())
        await asyncio.sleep(0)
        client.disconnect()
        with pytest.raises(ConnectError, match="aborted by disconnect"):
            await first
        assert client.state is ConnectionState.DISCONNECTED
        assert not client.reconnect_pending
        await asyncio.sleep(0.1)
        assert gateway.open_connections == 0


class TestOutboundQueue:
    @pytest.mark.asyncio
    async def test_commands_written_in_order_with_spacing(self, gateway):
        client = _client(gateway.port, command_spacing=0.05)
        await client.connect()
        start = time.monotonic()
        client.set_power(1, True)
        client.set_volume(1, 45)
        client.set_source(1, 3)
        expected = b"!1,1,1\r!1,45,5\r!1,3,4\r"
        await wait_until(lambda: bytes(gateway.received) == expected)
        # Three writes with two gaps between them
        assert gateway.arrivals[-1] - start >= 0.09
        assert client.queue_depth == 0
        await client.aclose()

    @pytest.mark.asyncio
    async def test_commands_queued_offline_flush_on_connect(self, gateway):
        client = _client(gateway.port)
        client.set_mute(2, True)
        client.send_all_off()
        assert client.queue_depth == 2
        await client.connect()
        await wait_until(lambda: bytes(gateway.received) == b"!2,1,2\r!0,0,1\r")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_unsupported_command_not_queued(self):
        client = _client(1)
        client.set_bass(1, 5)
        client.query_zone(1)
        assert client.queue_depth == 0
        client.set_power(1, False)
        assert client.queue_depth == 1

    @pytest.mark.asyncio
    async def test_empty_and_non_ascii_commands_dropped(self):
        client = _client(1)
        client.enqueue("")
        client.enqueue("!1,1,1\ré")
        assert client.queue_depth == 0

    @pytest.mark.asyncio
    async def test_disconnect_keeps_queue(self):
        client = _client(1)
        client.set_power(1, True)
        client.disconnect()
        assert client.queue_depth == 1


    @pytest.mark.asyncio
    async def test_write_failure_requeues_at_head_and_resends_after_reconnect(self, gateway):
        client = _client(gateway.port, reconnect_delays=(0.3,))
        broken = BrokenWriter()
        # Pretend a connection is up whose socket dies on first write
        client._writer = broken
        client._state = ConnectionState.CONNECTED
        client.set_power(1, True)
        client.set_volume(2, 45)

        await wait_until(lambda: client.state is ConnectionState.DISCONNECTED)
        assert broken.written == [b"!1,1,1\r"]
        assert broken.closed
        assert client.queue_depth == 2
        assert client._queue[0] == "!1,1,1\r"
        assert client.reconnect_pending
        assert gateway.connections == 0

        await wait_until(lambda: bytes(gateway.received) == b"!1,1,1\r!2,45,5\r")
        assert client.queue_depth == 0
        await client.aclose()


class TestInbound:
    @pytest.mark.asyncio
    async def test_status_lines_reach_sink(self, gateway):
        updates = []
        client = _client(gateway.port, on_zone_event=lambda *args: updates.append(args))
        await client.connect()
        await wait_until(lambda: gateway.writers)
        await gateway.send(b"!1,1,1\r\n!2,45,5\r\n")
        await wait_until(lambda: len(updates) == 2)
        assert updates == [(1, "power", True), (2, "volume", 0.45)]
        assert client.stats["rx_events"] == 2
        await client.aclose()

    @pytest.mark.asyncio
    async def test_line_split_across_reads(self, gateway):
        updates = []
        client = _client(gateway.port, on_zone_event=lambda *args: updates.append(args))
        await client.connect()
        await wait_until(lambda: gateway.writers)
        await gateway.send(b"!3,4")
        await asyncio.sleep(0.05)
        await gateway.send(b",4\r\n")
        await wait_until(lambda: updates)
        assert updates == [(3, "source", "4")]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_break_reader(self, gateway):
        events = []

        def sink(zone, field, value):
            events.append(zone)
            raise RuntimeError("boom")

        client = _client(gateway.port, on_zone_event=sink)
        await client.connect()
        await wait_until(lambda: gateway.writers)
        await gateway.send(b"!1,1,1\r\n!2,1,1\r\n")
        await wait_until(lambda: len(events) == 2)
        assert client.is_connected
        await client.aclose()


class TestReconnect:
    @pytest.mark.asyncio
    async def test_delay_schedule_caps_at_last_value(self):
        client = GatewayClient("127.0.0.1", 1)
        seen = []
        for _ in range(7):
            seen.append(client.next_reconnect_delay())
            client._schedule_reconnect()
            client._cancel_reconnect()
        assert seen == [1.0, 2.0, 5.0, 10.0, 30.0, 30.0, 30.0]
        assert client.reconnect_attempt == 7
        client.disconnect()

    @pytest.mark.asyncio
    async def test_only_one_reconnect_pending(self):
        client = GatewayClient("127.0.0.1", 1)
        client._schedule_reconnect()
        client._schedule_reconnect()
        assert client.reconnect_attempt == 1
        client.disconnect()

    @pytest.mark.asyncio
    async def test_successful_connect_resets_attempts(self, gateway):
        client = _client(gateway.port)
        client._reconnect_attempt = 3
        await client.connect()
        assert client.reconnect_attempt == 0
        await client.aclose()

    @pytest.mark.asyncio
    async def test_reconnects_after_remote_close(self, gateway):
        client = _client(gateway.port)
        await client.connect()
        await wait_until(lambda: gateway.connections == 1)
        gateway.drop_clients()
        await wait_until(lambda: client.state is not ConnectionState.CONNECTED)
        await wait_until(lambda: gateway.connections == 2 and client.is_connected)
        assert client.reconnect_attempt == 0
        client.set_power(4, True)
        await wait_until(lambda: bytes(gateway.received).endswith(b"!4,1,1\r"))
        await client.aclose()
