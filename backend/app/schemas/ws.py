"""Pydantic schemas for WebSocket messages."""

from typing import Any

from pydantic import BaseModel


class WSMessage(BaseModel):
    type: str
    data: Any = None


class ZoneUpdateData(BaseModel):
    zone: int
    field: str
    value: Any = None
    source: str  # "gateway" or "command"
