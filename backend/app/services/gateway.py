"""Gateway service: binds the configured gateway client to the zone store.

Validates zone actions coming from the API, forwards them to the shared
gateway client, and writes the expected result into the zone store right
away (the gateway's own status line may correct it later).
"""

import logging
import math
from typing import Any, Optional

from ..config import Settings, settings as default_settings
from ..protocol.commands import clamp_int
from ..protocol.constants import (
    MIN_ZONE,
    MAX_ZONE,
    MIN_SOURCE,
    MAX_SOURCE,
    MIN_VOLUME,
    MAX_VOLUME,
    MIN_TONE,
    MAX_TONE,
    FIELD_POWER,
    FIELD_MUTE,
    FIELD_SOURCE,
    FIELD_VOLUME,
    FIELD_LOUDNESS,
    CommandKind,
)
from ..protocol.gateway_client import ConnectError, GatewayClient, GatewayTarget
from ..protocol.registry import ClientRegistry
from .zone_state import ZoneStateStore

logger = logging.getLogger(__name__)

TONE_KINDS = (CommandKind.BASS, CommandKind.TREBLE, CommandKind.BALANCE, CommandKind.LOUDNESS)


class GatewayServiceError(Exception):
    """Base exception for gateway service failures."""


class GatewayNotConfiguredError(GatewayServiceError):
    """No gateway host/port has been configured."""


class UnsupportedCommandError(GatewayServiceError):
    """The command kind is not enabled for this hardware."""


class InvalidZoneError(ValueError):
    """The zone is not valid for the requested action."""


class InvalidValueError(ValueError):
    """The value cannot be interpreted for the requested action."""


def _finite(value: Any, what: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidValueError(f"Invalid {what}: {value!r}") from None
    if not math.isfinite(number):
        raise InvalidValueError(f"Invalid {what}: {value!r}")
    return number


class GatewayService:
    """Glue between the API, the client registry and the zone store."""

    def __init__(
        self,
        registry: ClientRegistry,
        store: ZoneStateStore,
        app_settings: Optional[Settings] = None,
    ):
        self.registry = registry
        self.store = store
        self._settings = app_settings or default_settings
        self._client: Optional[GatewayClient] = None

    @property
    def client(self) -> Optional[GatewayClient]:
        return self._client

    def status(self) -> dict[str, Any]:
        client = self._client
        if client is None:
            return {
                "configured": False,
                "host": None,
                "port": None,
                "state": "disconnected",
                "queue_depth": 0,
                "reconnect_attempt": 0,
                "reconnect_pending": False,
            }
        return {"configured": True, **client.stats}

    # ---- lifecycle ----

    def bind(self, host: str, port: Any) -> Optional[GatewayClient]:
        """Look up (or create) the client for host:port without connecting."""
        client = self.registry.get_client(
            host,
            port,
            on_zone_event=self.store.on_zone_event,
            commands=self._settings.command_set(),
            command_spacing=self._settings.command_spacing,
            reconnect_delays=self._settings.reconnect_delays,
            connect_timeout=self._settings.connect_timeout,
        )
        if client is None:
            logger.error("Missing gateway settings (host/port)")
        self._client = client
        return client

    async def async_start(self, host: str, port: Any) -> None:
        """Bind and connect. Connect failures are logged; the client keeps retrying."""
        client = self.bind(host, port)
        if client is None:
            return
        try:
            await client.connect()
        except ConnectError as err:
            logger.error("Gateway connect failed: %s", err)

    async def async_reconfigure(self, host: str, port: Any) -> None:
        """Switch to a new gateway address after a settings change."""
        new_target = GatewayTarget(host or "", int(port) if port else 0)
        old = self._client
        if old is not None and old.target == new_target:
            return
        self._client = None
        if old is not None:
            logger.info("Gateway settings changed: %s -> %s", old.target, new_target)
            await self.registry.async_remove(old.target)
        await self.async_start(host, port)

    async def async_reconnect(self) -> None:
        """Drop the current socket and connect again right away."""
        client = self._require_client()
        client.disconnect()
        try:
            await client.connect()
        except ConnectError as err:
            logger.warning("Manual reconnect failed: %s", err)

    async def async_stop(self) -> None:
        self._client = None
        await self.registry.async_close_all()

    # ---- validation ----

    def _require_client(self) -> GatewayClient:
        if self._client is None:
            raise GatewayNotConfiguredError("Gateway not configured")
        return self._client

    @staticmethod
    def _check_zone(zone: Any) -> int:
        if isinstance(zone, bool) or not isinstance(zone, int) or not MIN_ZONE <= zone <= MAX_ZONE:
            raise InvalidZoneError(f"Zone must be {MIN_ZONE}-{MAX_ZONE}, got {zone!r}")
        return zone

    # ---- zone actions ----

    def set_zone_power(self, zone: int, on: bool) -> None:
        zone = self._check_zone(zone)
        client = self._require_client()
        client.set_power(zone, on)
        self.store.apply_optimistic(zone, FIELD_POWER, bool(on))

    def zone_off(self, zone: int) -> None:
        self.set_zone_power(zone, False)

    def set_zone_mute(self, zone: int, on: bool) -> None:
        zone = self._check_zone(zone)
        client = self._require_client()
        client.set_mute(zone, on)
        self.store.apply_optimistic(zone, FIELD_MUTE, bool(on))

    def set_zone_volume(self, zone: int, level: Any) -> int:
        """Set volume 0-100. Returns the clamped level sent."""
        zone = self._check_zone(zone)
        vol = clamp_int(_finite(level, "volume"), MIN_VOLUME, MAX_VOLUME)
        client = self._require_client()
        client.set_volume(zone, vol)
        self.store.apply_optimistic(zone, FIELD_VOLUME, vol / MAX_VOLUME)
        return vol

    def set_zone_source(self, zone: int, source: Any) -> str:
        """Select source 1-6. Returns the selector string recorded."""
        zone = self._check_zone(zone)
        src = clamp_int(_finite(source, "source"), MIN_SOURCE, MAX_SOURCE)
        client = self._require_client()
        client.set_source(zone, src)
        self.store.apply_optimistic(zone, FIELD_SOURCE, str(src))
        return str(src)

    def set_zone_tone(self, zone: int, kind: Any, level: Any) -> Any:
        """Bass, treble, balance (-10..10) or loudness (bool)."""
        zone = self._check_zone(zone)
        try:
            kind = CommandKind(kind)
        except ValueError:
            raise InvalidValueError(f"Unknown tone control: {kind!r}") from None
        if kind not in TONE_KINDS:
            raise InvalidValueError(f"Not a tone control: {kind.value}")
        client = self._require_client()
        if not client.commands.supports(kind):
            raise UnsupportedCommandError(f"{kind.value} is not supported on this gateway")

        if kind is CommandKind.LOUDNESS:
            value: Any = bool(level)
            client.set_loudness(zone, value)
            self.store.apply_optimistic(zone, FIELD_LOUDNESS, value)
            return value

        value = clamp_int(_finite(level, kind.value), MIN_TONE, MAX_TONE)
        setter = {
            CommandKind.BASS: client.set_bass,
            CommandKind.TREBLE: client.set_treble,
            CommandKind.BALANCE: client.set_balance,
        }[kind]
        setter(zone, value)
        self.store.apply_optimistic(zone, kind.value, value)
        return value

    def all_zones_off(self) -> None:
        """System-wide power off (zone 0)."""
        client = self._require_client()
        client.send_all_off()
        for zone in range(MIN_ZONE, MAX_ZONE + 1):
            self.store.apply_optimistic(zone, FIELD_POWER, False)
