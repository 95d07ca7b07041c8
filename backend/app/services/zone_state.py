"""In-memory zone state, the sink for gateway status updates.

Two independent paths write here: optimistic writes made as soon as a
command is queued, and authoritative writes decoded from the gateway's
status lines. Whichever arrives last wins; nothing reconciles them.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine, Optional

from ..protocol.constants import MIN_ZONE, MAX_ZONE, ZONE_FIELDS
from ..schemas.ws import WSMessage, ZoneUpdateData

logger = logging.getLogger(__name__)

BroadcastCallback = Callable[[dict[str, Any]], Coroutine[Any, Any, Any]]


@dataclass
class ZoneState:
    """Last known state of one zone."""
    zone: int
    power: Optional[bool] = None
    mute: Optional[bool] = None
    source: Optional[str] = None
    volume: Optional[float] = None  # 0.0 - 1.0
    bass: Optional[int] = None
    treble: Optional[int] = None
    balance: Optional[int] = None
    loudness: Optional[bool] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data


class ZoneStateStore:
    """Holds ZoneState for zones 1-6 and notifies a broadcast callback."""

    def __init__(self) -> None:
        self._zones = {z: ZoneState(zone=z) for z in range(MIN_ZONE, MAX_ZONE + 1)}
        self._broadcast_callback: Optional[BroadcastCallback] = None
        self._pending: set[asyncio.Task] = set()

    def set_broadcast_callback(self, callback: Optional[BroadcastCallback]) -> None:
        """Set the async callback invoked after each write.

        In the web app this is the WebSocket manager's broadcast.
        """
        self._broadcast_callback = callback

    def get(self, zone: int) -> Optional[ZoneState]:
        return self._zones.get(zone)

    def snapshot(self) -> list[dict[str, Any]]:
        return [state.to_dict() for state in self._zones.values()]

    def on_zone_event(self, zone: int, field: str, value: Any) -> None:
        """State sink for decoded gateway status lines."""
        self._write(zone, field, value, source="gateway")

    def apply_optimistic(self, zone: int, field: str, value: Any) -> None:
        """Record the value a command is expected to produce."""
        self._write(zone, field, value, source="command")

    def _write(self, zone: int, field: str, value: Any, source: str) -> None:
        state = self._zones.get(zone)
        if state is None or field not in ZONE_FIELDS:
            logger.debug("Ignoring %s update for zone %s field %s", source, zone, field)
            return
        setattr(state, field, value)
        state.updated_at = datetime.now(timezone.utc)
        logger.debug("Zone %d %s=%r (%s)", zone, field, value, source)
        message = WSMessage(
            type="zone_update",
            data=ZoneUpdateData(zone=zone, field=field, value=value, source=source),
        )
        self._notify(message.model_dump())

    def _notify(self, message: dict[str, Any]) -> None:
        if self._broadcast_callback is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._broadcast_callback(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
