"""Pydantic schemas for configuration and gateway status API."""

from pydantic import BaseModel


class ConfigItem(BaseModel):
    key: str
    value: str | int | float | bool


class ConfigUpdate(BaseModel):
    key: str
    value: str | int | float | bool


class GatewayStatusResponse(BaseModel):
    configured: bool
    host: str | None = None
    port: int | None = None
    state: str
    queue_depth: int = 0
    reconnect_attempt: int = 0
    reconnect_pending: bool = False
    connected_at: str | None = None
    last_rx: str | None = None
    tx_count: int = 0
    rx_events: int = 0
