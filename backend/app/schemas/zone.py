"""Pydantic schemas for zone control API."""

from typing import Literal

from pydantic import BaseModel, Field


class ZoneStateResponse(BaseModel):
    zone: int
    power: bool | None = None
    mute: bool | None = None
    source: str | None = None
    volume: float | None = None
    bass: int | None = None
    treble: int | None = None
    balance: int | None = None
    loudness: bool | None = None
    updated_at: str | None = None


class ZonesResponse(BaseModel):
    zones: list[ZoneStateResponse]


class PowerRequest(BaseModel):
    on: bool


class MuteRequest(BaseModel):
    on: bool


class VolumeRequest(BaseModel):
    level: float = Field(allow_inf_nan=False)  # 0-100, clamped


class SourceRequest(BaseModel):
    source: float = Field(allow_inf_nan=False)  # 1-6, clamped


class ToneRequest(BaseModel):
    kind: Literal["bass", "treble", "balance", "loudness"]
    level: float = Field(allow_inf_nan=False)  # -10..10; loudness uses 0/1


class ActionResponse(BaseModel):
    status: str = "ok"
    zone: ZoneStateResponse | None = None
