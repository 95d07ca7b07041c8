"""Protocol constants for the Russound ASCII control interface."""

import re
from enum import Enum

# Line terminators
CR = "\r"
LF = "\n"

# Outbound sigil; inbound lines may start with either
SIGIL_COMMAND = "!"
SIGIL_STATUS = "#"

# !<zone>,<value>,<cmd>  or  #<zone>,<value>,<cmd>
INBOUND_LINE = re.compile(r"^[!#]\s*(\d+)\s*,\s*(-?\d+)\s*,\s*(\d+)\s*$")
LINE_SPLIT = re.compile(r"\r?\n|\r")

# Zones: 0 addresses the whole system, 1-6 are the controller's outputs
SYSTEM_ZONE = 0
MIN_ZONE = 1
MAX_ZONE = 6

# Value domains
MIN_SOURCE = 1
MAX_SOURCE = 6
MIN_VOLUME = 0
MAX_VOLUME = 100
MIN_TONE = -10
MAX_TONE = 10

# Wire ids confirmed against the CAx6.6
CMD_POWER = 1
CMD_MUTE = 2
CMD_SOURCE = 4
CMD_VOLUME = 5

# Pacing for the serial-over-IP bridge (seconds)
COMMAND_SPACING_S = 0.040
RECONNECT_DELAYS_S = (1.0, 2.0, 5.0, 10.0, 30.0)
CONNECT_TIMEOUT_S = 5.0
RECV_MAX_BYTES = 4096

# Sentinel returned by the encoder for commands that must not be sent
NOOP = ""


class CommandKind(str, Enum):
    """Semantic operations understood by the controller."""
    POWER = "power"
    MUTE = "mute"
    SOURCE = "source"
    VOLUME = "volume"
    ALL_OFF = "all_off"
    BASS = "bass"
    TREBLE = "treble"
    BALANCE = "balance"
    LOUDNESS = "loudness"
    ZONE_QUERY = "zone_query"


class Support(str, Enum):
    """How far a command kind has been confirmed on the target hardware."""
    VERIFIED = "verified"
    UNVERIFIED = "unverified"    # id not confirmed; encodes to NOOP until one is supplied
    UNSUPPORTED = "unsupported"  # never transmitted


# Zone state field names reported to the state sink
FIELD_POWER = "power"
FIELD_MUTE = "mute"
FIELD_SOURCE = "source"
FIELD_VOLUME = "volume"
FIELD_BASS = "bass"
FIELD_TREBLE = "treble"
FIELD_BALANCE = "balance"
FIELD_LOUDNESS = "loudness"

ZONE_FIELDS = (
    FIELD_POWER,
    FIELD_MUTE,
    FIELD_SOURCE,
    FIELD_VOLUME,
    FIELD_BASS,
    FIELD_TREBLE,
    FIELD_BALANCE,
    FIELD_LOUDNESS,
)
