"""Inbound line parser for the Russound ASCII control protocol.

The gateway sends unsolicited status lines of the form ``!z,v,c`` or
``#z,v,c``. Lines that do not match are skipped: the serial-to-IP bridge
is shared hardware and regularly emits partial or noisy data.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from .commands import CommandSet, DEFAULT_COMMANDS, clamp_int
from .constants import (
    INBOUND_LINE,
    LINE_SPLIT,
    MIN_ZONE,
    MAX_ZONE,
    FIELD_POWER,
    FIELD_MUTE,
    FIELD_SOURCE,
    FIELD_VOLUME,
    FIELD_LOUDNESS,
    MAX_VOLUME,
)

logger = logging.getLogger(__name__)

Chunk = Union[bytes, bytearray, str]


@dataclass(frozen=True)
class InboundEvent:
    """One decoded status line."""
    zone: int
    value: int
    cmd: int
    raw: str


@dataclass(frozen=True)
class ZoneUpdate:
    """A status line mapped onto a zone state field."""
    zone: int
    field: str
    value: Any


def _to_text(chunk: Chunk) -> str:
    if isinstance(chunk, (bytes, bytearray)):
        # The protocol is ASCII; anything else is line noise
        return bytes(chunk).decode("ascii", errors="replace")
    return str(chunk)


def parse_line(line: Chunk) -> Optional[InboundEvent]:
    """Parse a single line. Returns None for blank or non-matching input."""
    trimmed = _to_text(line).strip()
    if not trimmed:
        return None
    m = INBOUND_LINE.match(trimmed)
    if m is None:
        logger.debug("Skipping unrecognised line: %r", trimmed)
        return None
    return InboundEvent(
        zone=int(m.group(1)),
        value=int(m.group(2)),
        cmd=int(m.group(3)),
        raw=trimmed,
    )


def decode_chunk(chunk: Chunk) -> list[InboundEvent]:
    """Decode every complete line in a chunk, in order.

    Splits on CR, LF or CRLF. Holds no state between calls, so a line split
    across two chunks is lost; use LineBuffer for streams.
    """
    events = []
    for segment in LINE_SPLIT.split(_to_text(chunk)):
        event = parse_line(segment)
        if event is not None:
            events.append(event)
    return events


def map_event(
    event: InboundEvent,
    commands: CommandSet = DEFAULT_COMMANDS,
) -> Optional[ZoneUpdate]:
    """Map a decoded line onto a zone state field.

    Only zones 1-6 are mapped; system-scope (zone 0) lines, unknown command
    ids and kinds not enabled in ``commands`` return None.
    """
    if not MIN_ZONE <= event.zone <= MAX_ZONE:
        return None
    spec = commands.by_cmd_id(event.cmd)
    if spec is None or spec.field is None:
        return None

    field = spec.field
    if field in (FIELD_POWER, FIELD_MUTE, FIELD_LOUDNESS):
        value: Any = event.value == 1
    elif field == FIELD_SOURCE:
        value = str(spec.domain.clamp(event.value))
    elif field == FIELD_VOLUME:
        value = spec.domain.clamp(event.value) / MAX_VOLUME
    else:
        # bass / treble / balance
        value = clamp_int(event.value, spec.domain.minimum, spec.domain.maximum)
    return ZoneUpdate(zone=event.zone, field=field, value=value)


class LineBuffer:
    """Reassemble lines from a byte stream whose chunks may split lines.

    Complete lines are parsed as they arrive; an unterminated tail is kept
    until the next feed().
    """

    def __init__(self, max_pending: int = 1024):
        self._pending = ""
        self._max_pending = max_pending

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: Chunk) -> list[InboundEvent]:
        text = self._pending + _to_text(chunk)
        segments = LINE_SPLIT.split(text)
        # A trailing CR may be the first half of CRLF; the empty tail handles both
        self._pending = segments.pop()
        if len(self._pending) > self._max_pending:
            logger.debug("Discarding %d bytes without a line terminator", len(self._pending))
            self._pending = ""

        events = []
        for segment in segments:
            event = parse_line(segment)
            if event is not None:
                events.append(event)
        return events

    def clear(self) -> None:
        self._pending = ""
