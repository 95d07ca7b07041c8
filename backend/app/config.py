"""Application configuration using Pydantic Settings."""

from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

from .protocol.commands import CommandSet, DEFAULT_COMMANDS
from .protocol.constants import COMMAND_SPACING_S, RECONNECT_DELAYS_S

# Resolve config: prefer system config (installed), fall back to repo .env (dev)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_SYSTEM_CONF = Path("/etc/russound-bridge/russound-bridge.conf")
_ENV_FILE = _SYSTEM_CONF if _SYSTEM_CONF.exists() else _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    # Gateway (defaults for the settings store; empty = not configured)
    gateway_host: str = ""
    gateway_port: int = 0
    connect_timeout: float = 5.0

    # Outbound pacing and reconnect schedule
    command_spacing_ms: int = int(COMMAND_SPACING_S * 1000)
    reconnect_delays: list[float] = list(RECONNECT_DELAYS_S)

    # Wire ids for command kinds not yet verified on this hardware,
    # e.g. RUSSOUND_TONE_COMMAND_IDS='{"bass": 7}'
    tone_command_ids: dict[str, int] = {}

    # Database
    db_path: str = "russound_bridge.db"

    @field_validator("reconnect_delays")
    @classmethod
    def _check_delays(cls, value: list[float]) -> list[float]:
        if not value or any(d < 0 for d in value):
            raise ValueError("reconnect_delays must be a non-empty list of non-negative seconds")
        return value

    @field_validator("tone_command_ids")
    @classmethod
    def _check_tone_ids(cls, value: dict[str, int]) -> dict[str, int]:
        # Raises ValueError for kinds that cannot be enabled
        DEFAULT_COMMANDS.with_overrides(value)
        return value

    @model_validator(mode="after")
    def _resolve_db_path(self) -> "Settings":
        """Make db_path absolute: relative to /var/lib/russound-bridge if installed, else project root."""
        p = Path(self.db_path)
        if not p.is_absolute():
            if _ENV_FILE == _SYSTEM_CONF:
                self.db_path = str(Path("/var/lib/russound-bridge") / p)
            else:
                self.db_path = str(_PROJECT_ROOT / p)
        return self

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    @property
    def command_spacing(self) -> float:
        return self.command_spacing_ms / 1000

    def command_set(self) -> CommandSet:
        """Command table for the connected hardware revision."""
        return DEFAULT_COMMANDS.with_overrides(self.tone_command_ids)

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_prefix": "RUSSOUND_", "env_file": str(_ENV_FILE)}


settings = Settings()
