"""Command table and builders for the Russound ASCII control protocol.

Every command is a single line: ``!<zone>,<value>,<cmd>`` terminated with CR.
Which command kinds exist, their wire ids, value domains and whether they
have been verified on the hardware is data (``COMMAND_SPECS``), so enabling
a tone control is a table change rather than a code change.
"""

import math
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional, Union

from .constants import (
    CR,
    NOOP,
    SIGIL_COMMAND,
    SYSTEM_ZONE,
    CMD_POWER,
    CMD_MUTE,
    CMD_SOURCE,
    CMD_VOLUME,
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
    FIELD_BASS,
    FIELD_TREBLE,
    FIELD_BALANCE,
    FIELD_LOUDNESS,
    CommandKind,
    Support,
)

KindLike = Union[CommandKind, str]


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def clamp_int(value: Any, minimum: int, maximum: int) -> int:
    """Coerce value to an int within [minimum, maximum].

    Non-numeric input (None, garbage strings, NaN) clamps to the lower bound.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return minimum
    if math.isnan(number):
        return minimum
    if math.isinf(number):
        return maximum if number > 0 else minimum
    return max(minimum, min(maximum, round_half_away(number)))


@dataclass(frozen=True)
class ValueDomain:
    """Valid wire values for a command kind."""
    minimum: int
    maximum: int
    boolean: bool = False

    def clamp(self, raw: Any) -> int:
        if self.boolean:
            return 1 if raw else 0
        return clamp_int(raw, self.minimum, self.maximum)


BOOLEAN = ValueDomain(0, 1, boolean=True)
SOURCE_RANGE = ValueDomain(MIN_SOURCE, MAX_SOURCE)
VOLUME_RANGE = ValueDomain(MIN_VOLUME, MAX_VOLUME)
TONE_RANGE = ValueDomain(MIN_TONE, MAX_TONE)


@dataclass(frozen=True)
class CommandSpec:
    """Definition of a single command kind."""
    kind: CommandKind
    cmd_id: Optional[int]
    domain: Optional[ValueDomain]
    support: Support
    field: Optional[str] = None        # zone state field updated by inbound lines
    configurable: bool = False         # wire id may be supplied by configuration
    fixed_zone: Optional[int] = None
    fixed_value: Optional[int] = None


COMMAND_SPECS: tuple[CommandSpec, ...] = (
    CommandSpec(CommandKind.POWER, CMD_POWER, BOOLEAN, Support.VERIFIED, FIELD_POWER),
    CommandSpec(CommandKind.MUTE, CMD_MUTE, BOOLEAN, Support.VERIFIED, FIELD_MUTE),
    CommandSpec(CommandKind.SOURCE, CMD_SOURCE, SOURCE_RANGE, Support.VERIFIED, FIELD_SOURCE),
    CommandSpec(CommandKind.VOLUME, CMD_VOLUME, VOLUME_RANGE, Support.VERIFIED, FIELD_VOLUME),
    # Zone 0 power off; shares the power id so it carries no inbound field
    CommandSpec(
        CommandKind.ALL_OFF, CMD_POWER, BOOLEAN, Support.VERIFIED,
        fixed_zone=SYSTEM_ZONE, fixed_value=0,
    ),
    # Tone and loudness ids are not confirmed for the CAx6.6 yet
    CommandSpec(CommandKind.BASS, None, TONE_RANGE, Support.UNVERIFIED, FIELD_BASS, configurable=True),
    CommandSpec(CommandKind.TREBLE, None, TONE_RANGE, Support.UNVERIFIED, FIELD_TREBLE, configurable=True),
    CommandSpec(CommandKind.BALANCE, None, TONE_RANGE, Support.UNVERIFIED, FIELD_BALANCE, configurable=True),
    CommandSpec(CommandKind.LOUDNESS, None, BOOLEAN, Support.UNVERIFIED, FIELD_LOUDNESS, configurable=True),
    CommandSpec(CommandKind.ZONE_QUERY, None, None, Support.UNSUPPORTED, fixed_value=0),
)


class CommandSet:
    """The command table as seen by one hardware revision."""

    def __init__(self, specs: Mapping[CommandKind, CommandSpec]):
        self._specs = dict(specs)
        # Inbound lookup: only kinds that are transmitted and carry a field
        self._by_cmd_id: dict[int, CommandSpec] = {
            spec.cmd_id: spec
            for spec in self._specs.values()
            if spec.support is Support.VERIFIED and spec.cmd_id is not None and spec.field
        }

    @classmethod
    def from_specs(cls, specs: tuple[CommandSpec, ...]) -> "CommandSet":
        return cls({spec.kind: spec for spec in specs})

    def spec(self, kind: KindLike) -> CommandSpec:
        return self._specs[CommandKind(kind)]

    def support(self, kind: KindLike) -> Support:
        return self.spec(kind).support

    def supports(self, kind: KindLike) -> bool:
        """True when commands of this kind are actually transmitted."""
        spec = self.spec(kind)
        return spec.support is Support.VERIFIED and spec.cmd_id is not None

    def by_cmd_id(self, cmd_id: int) -> Optional[CommandSpec]:
        return self._by_cmd_id.get(cmd_id)

    def with_overrides(self, cmd_ids: Mapping[KindLike, int]) -> "CommandSet":
        """Return a copy with wire ids supplied for unverified kinds.

        Raises ValueError for unknown kinds, kinds that cannot be enabled,
        and ids that are not positive integers.
        """
        specs = dict(self._specs)
        for name, cmd_id in cmd_ids.items():
            try:
                kind = CommandKind(name)
            except ValueError:
                raise ValueError(f"Unknown command kind: {name!r}") from None
            spec = specs[kind]
            if not spec.configurable:
                raise ValueError(f"Command kind {kind.value!r} cannot be enabled by configuration")
            if isinstance(cmd_id, bool) or not isinstance(cmd_id, int) or cmd_id <= 0:
                raise ValueError(f"Wire id for {kind.value!r} must be a positive integer, got {cmd_id!r}")
            specs[kind] = replace(spec, cmd_id=cmd_id, support=Support.VERIFIED)
        return CommandSet(specs)


DEFAULT_COMMANDS = CommandSet.from_specs(COMMAND_SPECS)


def _build(zone: int, value: int, cmd_id: int) -> str:
    """Format one wire line: !<zone>,<value>,<cmd> CR."""
    return f"{SIGIL_COMMAND}{zone},{value},{cmd_id}{CR}"


def encode(
    kind: KindLike,
    zone: int,
    raw_value: Any = 0,
    commands: CommandSet = DEFAULT_COMMANDS,
) -> str:
    """Encode a command, clamping raw_value into the kind's domain.

    Returns NOOP ("") when the kind is not supported by ``commands``;
    callers must not transmit it. Raises ValueError for a negative zone.
    """
    spec = commands.spec(kind)
    if not commands.supports(kind):
        return NOOP
    assert spec.cmd_id is not None

    if spec.fixed_zone is not None:
        zone = spec.fixed_zone
    zone = int(zone)
    if zone < 0:
        raise ValueError(f"Zone must be non-negative, got {zone}")

    if spec.fixed_value is not None:
        value = spec.fixed_value
    else:
        assert spec.domain is not None
        value = spec.domain.clamp(raw_value)
    return _build(zone, value, spec.cmd_id)


def build_power_command(zone: int, on: bool, commands: CommandSet = DEFAULT_COMMANDS) -> str:
    """Build a zone power command (1=on, 0=off)."""
    return encode(CommandKind.POWER, zone, on, commands)


def build_mute_command(zone: int, on: bool, commands: CommandSet = DEFAULT_COMMANDS) -> str:
    return encode(CommandKind.MUTE, zone, on, commands)


def build_source_command(zone: int, source: Any, commands: CommandSet = DEFAULT_COMMANDS) -> str:
    """Build a source select command; source is clamped to 1-6."""
    return encode(CommandKind.SOURCE, zone, source, commands)


def build_volume_command(zone: int, volume: Any, commands: CommandSet = DEFAULT_COMMANDS) -> str:
    """Build a volume command; volume is clamped to 0-100."""
    return encode(CommandKind.VOLUME, zone, volume, commands)


def build_all_off_command(commands: CommandSet = DEFAULT_COMMANDS) -> str:
    """Build the system-wide power off (zone 0)."""
    return encode(CommandKind.ALL_OFF, SYSTEM_ZONE, 0, commands)


def build_bass_command(zone: int, level: Any, commands: CommandSet = DEFAULT_COMMANDS) -> str:
    return encode(CommandKind.BASS, zone, level, commands)


def build_treble_command(zone: int, level: Any, commands: CommandSet = DEFAULT_COMMANDS) -> str:
    return encode(CommandKind.TREBLE, zone, level, commands)


def build_balance_command(zone: int, level: Any, commands: CommandSet = DEFAULT_COMMANDS) -> str:
    return encode(CommandKind.BALANCE, zone, level, commands)


def build_loudness_command(zone: int, on: bool, commands: CommandSet = DEFAULT_COMMANDS) -> str:
    return encode(CommandKind.LOUDNESS, zone, on, commands)


def build_zone_query_command(zone: int, commands: CommandSet = DEFAULT_COMMANDS) -> str:
    """Zone status query. Not known for this hardware, always NOOP."""
    return encode(CommandKind.ZONE_QUERY, zone, 0, commands)
