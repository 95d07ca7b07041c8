"""Resilient TCP client for a Russound gateway.

Owns the socket lifecycle for one gateway: connects, reconnects with a
fixed backoff schedule, writes queued commands one at a time with a pause
between them (the gateway is a slow serial-over-IP bridge that drops
back-to-back commands), and feeds decoded status lines to a state sink.

Everything runs on one asyncio event loop; there are no locks because
state only changes between awaits.
"""

import asyncio
import contextlib
import logging
import socket
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from .commands import (
    CommandSet,
    DEFAULT_COMMANDS,
    build_power_command,
    build_mute_command,
    build_source_command,
    build_volume_command,
    build_all_off_command,
    build_bass_command,
    build_treble_command,
    build_balance_command,
    build_loudness_command,
    build_zone_query_command,
)
from .constants import (
    COMMAND_SPACING_S,
    CONNECT_TIMEOUT_S,
    RECONNECT_DELAYS_S,
    RECV_MAX_BYTES,
)
from .events import InboundEvent, LineBuffer, map_event

_LOGGER = logging.getLogger(__name__)

ZoneEventSink = Callable[[int, str, Any], None]
InboundEventSink = Callable[[InboundEvent], None]


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        # No running loop
        return None


@dataclass(frozen=True)
class GatewayTarget:
    """Address of a physical gateway."""
    host: str
    port: int

    @property
    def is_configured(self) -> bool:
        return bool(self.host) and bool(self.port)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class GatewayError(Exception):
    """Base exception for gateway client failures."""


class ConnectError(GatewayError, ConnectionError):
    """Connection refused, unreachable, timed out, or already in progress."""


class WriteFailure(GatewayError, ConnectionError):
    """A socket write failed; handled like a close."""


class GatewayClient:
    """Persistent connection to one gateway with a paced outbound queue."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        on_zone_event: Optional[ZoneEventSink] = None,
        on_event: Optional[InboundEventSink] = None,
        commands: CommandSet = DEFAULT_COMMANDS,
        command_spacing: float = COMMAND_SPACING_S,
        reconnect_delays: Sequence[float] = RECONNECT_DELAYS_S,
        connect_timeout: float = CONNECT_TIMEOUT_S,
        logger: Optional[logging.Logger] = None,
    ):
        if not reconnect_delays:
            raise ValueError("reconnect_delays must not be empty")
        self.target = GatewayTarget(host or "", int(port) if port else 0)
        self.on_zone_event = on_zone_event
        self.on_event = on_event
        self._commands = commands
        self._command_spacing = command_spacing
        self._reconnect_delays = tuple(reconnect_delays)
        self._connect_timeout = connect_timeout
        self._logger = logger if logger is not None else _LOGGER

        self._state = ConnectionState.DISCONNECTED
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._line_buffer = LineBuffer()
        self._queue: deque[str] = deque()

        self._reader_task: Optional[asyncio.Task] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnect_attempt = 0
        self._closing = False
        self._config_error_logged = False
        # Bumped by every connect() and disconnect(); a handshake whose
        # generation is stale must not install its socket
        self._connect_gen = 0
        self._handshake: Optional[asyncio.Future] = None

        self._connected_at: Optional[datetime] = None
        self._last_rx: Optional[datetime] = None
        self._tx_count = 0
        self._rx_events = 0

    # ---- properties ----

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._writer is not None

    @property
    def commands(self) -> CommandSet:
        return self._commands

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    @property
    def reconnect_attempt(self) -> int:
        return self._reconnect_attempt

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    @property
    def stats(self) -> dict:
        return {
            "host": self.target.host,
            "port": self.target.port,
            "state": self._state.value,
            "queue_depth": len(self._queue),
            "reconnect_attempt": self._reconnect_attempt,
            "reconnect_pending": self.reconnect_pending,
            "connected_at": self._connected_at.isoformat() if self._connected_at else None,
            "last_rx": self._last_rx.isoformat() if self._last_rx else None,
            "tx_count": self._tx_count,
            "rx_events": self._rx_events,
        }

    def next_reconnect_delay(self) -> float:
        """Delay the next scheduled reconnect would use."""
        index = min(self._reconnect_attempt, len(self._reconnect_delays) - 1)
        return self._reconnect_delays[index]

    # ---- connection lifecycle ----

    async def connect(self) -> None:
        """Open the TCP connection.

        Returns immediately when already connected or when host/port are
        missing (reported once). Raises ConnectError on refusal, timeout, or
        if a connect is already in flight; a failed attempt schedules a
        reconnect.
        """
        if not self.target.is_configured:
            if not self._config_error_logged:
                self._logger.error("Gateway connect skipped: host/port missing")
                self._config_error_logged = True
            return
        if self._state is ConnectionState.CONNECTED:
            return
        if self._state is ConnectionState.CONNECTING:
            raise ConnectError(f"Connect to {self.target} already in progress")

        self._cancel_reconnect()
        self._closing = False
        self._state = ConnectionState.CONNECTING
        self._connect_gen += 1
        gen = self._connect_gen
        self._logger.debug("Connecting to gateway %s", self.target)

        handshake = asyncio.ensure_future(asyncio.wait_for(
            asyncio.open_connection(self.target.host, self.target.port),
            timeout=self._connect_timeout,
        ))
        self._handshake = handshake
        try:
            reader, writer = await handshake
        except asyncio.CancelledError:
            if gen != self._connect_gen and handshake.cancelled():
                # disconnect() cancelled the handshake
                raise ConnectError(f"Connect to {self.target} aborted by disconnect") from None
            if gen == self._connect_gen:
                self._state = ConnectionState.DISCONNECTED
            raise
        except (OSError, asyncio.TimeoutError) as err:
            reason = str(err) or type(err).__name__
            if gen == self._connect_gen:
                self._state = ConnectionState.DISCONNECTED
                if not self._closing:
                    self._schedule_reconnect()
            raise ConnectError(f"Failed to connect to {self.target}: {reason}") from err
        finally:
            if self._handshake is handshake:
                self._handshake = None

        if gen != self._connect_gen:
            # disconnect() ran while the handshake was in flight
            writer.close()
            raise ConnectError(f"Connect to {self.target} aborted by disconnect")

        sock = writer.get_extra_info("socket")
        if sock is not None:
            with contextlib.suppress(OSError):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)

        self._reader = reader
        self._writer = writer
        self._line_buffer = LineBuffer()
        self._state = ConnectionState.CONNECTED
        self._reconnect_attempt = 0
        self._connected_at = datetime.now(timezone.utc)
        self._logger.info("Connected to gateway %s", self.target)

        self._reader_task = asyncio.create_task(self._read_loop(reader))
        self._kick_drain()

    def disconnect(self) -> None:
        """Close the connection and stop reconnecting. Queued commands are kept."""
        self._closing = True
        self._connect_gen += 1
        handshake = self._handshake
        self._handshake = None
        if handshake is not None and not handshake.done():
            handshake.cancel()
        self._cancel_reconnect()
        self._reconnect_attempt = 0
        was_connected = self._state is ConnectionState.CONNECTED
        self._teardown_socket()
        self._state = ConnectionState.DISCONNECTED
        if was_connected:
            self._logger.info("Disconnected from gateway %s", self.target)

    async def aclose(self) -> None:
        """Disconnect and wait for the socket and background tasks to finish."""
        tasks = [
            t for t in (self._reader_task, self._drain_task, self._reconnect_task)
            if t is not None and t is not _current_task()
        ]
        writer = self._writer
        self.disconnect()
        if writer is not None:
            with contextlib.suppress(OSError):
                await writer.wait_closed()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _teardown_socket(self) -> None:
        current = _current_task()
        for task in (self._reader_task, self._drain_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._reader_task = None
        if self._drain_task is not current:
            self._drain_task = None

        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is not None:
            writer.close()
        self._line_buffer.clear()

    def _handle_connection_lost(self, error: Optional[BaseException]) -> None:
        was_connected = self._state is ConnectionState.CONNECTED
        self._teardown_socket()
        self._state = ConnectionState.DISCONNECTED
        if was_connected:
            if error is not None:
                self._logger.info("Gateway %s disconnected: %s", self.target, error)
            else:
                self._logger.info("Gateway %s disconnected", self.target)
        if not self._closing:
            self._schedule_reconnect()

    # ---- reconnect ----

    def _schedule_reconnect(self) -> None:
        """Arm the reconnect timer; a no-op while one is already pending."""
        if self.reconnect_pending:
            return
        delay = self.next_reconnect_delay()
        self._reconnect_attempt += 1
        if self._reconnect_attempt == 1:
            self._logger.info("Scheduling reconnect to %s in %.1fs", self.target, delay)
        else:
            self._logger.debug(
                "Reconnect attempt %d to %s in %.1fs",
                self._reconnect_attempt, self.target, delay,
            )
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Clear before connect() so a failure can schedule the next attempt
        self._reconnect_task = None
        try:
            await self.connect()
        except ConnectError as err:
            self._logger.debug("Reconnect to %s failed: %s", self.target, err)

    # ---- inbound ----

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        error: Optional[BaseException] = None
        try:
            while True:
                chunk = await reader.read(RECV_MAX_BYTES)
                if not chunk:
                    break
                self._logger.debug("RX: %r", chunk)
                self._dispatch(chunk)
        except OSError as err:
            error = err
        if reader is not self._reader:
            # Socket was already replaced or torn down
            return
        self._handle_connection_lost(error)

    def _dispatch(self, chunk: bytes) -> None:
        self._last_rx = datetime.now(timezone.utc)
        for event in self._line_buffer.feed(chunk):
            self._rx_events += 1
            if self.on_event is not None:
                self._call_sink(self.on_event, event)
            update = map_event(event, self._commands)
            if update is None:
                self._logger.debug("No zone mapping for %r", event.raw)
                continue
            if self.on_zone_event is not None:
                self._call_sink(self.on_zone_event, update.zone, update.field, update.value)

    def _call_sink(self, sink: Callable[..., Any], *args: Any) -> None:
        try:
            sink(*args)
        except Exception:
            self._logger.exception("State sink failed for %r", args)

    # ---- outbound ----

    def enqueue(self, command: str) -> None:
        """Queue an encoded command; empty strings (the encoder's NOOP) are dropped."""
        if not isinstance(command, str) or not command.strip():
            return
        if not command.isascii():
            self._logger.warning("Dropping non-ASCII command %r", command)
            return
        self._queue.append(command)
        self._kick_drain()

    def _kick_drain(self) -> None:
        if not self._queue or not self.is_connected:
            return
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = asyncio.create_task(self._drain_queue())

    async def _drain_queue(self) -> None:
        while self._queue and self.is_connected:
            writer = self._writer
            assert writer is not None
            command = self._queue.popleft()
            try:
                writer.write(command.encode("ascii"))
                await writer.drain()
            except OSError as err:
                self._queue.appendleft(command)
                failure = WriteFailure(f"Write to {self.target} failed: {err}")
                self._logger.warning("%s", failure)
                if writer is self._writer:
                    self._handle_connection_lost(failure)
                return
            self._tx_count += 1
            self._logger.debug("TX: %r", command)
            await asyncio.sleep(self._command_spacing)

    # ---- commands ----

    def set_power(self, zone: int, on: bool) -> None:
        self.enqueue(build_power_command(zone, on, self._commands))

    def set_mute(self, zone: int, on: bool) -> None:
        self.enqueue(build_mute_command(zone, on, self._commands))

    def set_source(self, zone: int, source: Any) -> None:
        self.enqueue(build_source_command(zone, source, self._commands))

    def set_volume(self, zone: int, volume: Any) -> None:
        self.enqueue(build_volume_command(zone, volume, self._commands))

    def send_all_off(self) -> None:
        self.enqueue(build_all_off_command(self._commands))

    def set_bass(self, zone: int, level: Any) -> None:
        self.enqueue(build_bass_command(zone, level, self._commands))

    def set_treble(self, zone: int, level: Any) -> None:
        self.enqueue(build_treble_command(zone, level, self._commands))

    def set_balance(self, zone: int, level: Any) -> None:
        self.enqueue(build_balance_command(zone, level, self._commands))

    def set_loudness(self, zone: int, on: bool) -> None:
        self.enqueue(build_loudness_command(zone, on, self._commands))

    def query_zone(self, zone: int) -> None:
        self.enqueue(build_zone_query_command(zone, self._commands))
