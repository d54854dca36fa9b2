from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    temperature: str | None = None
    wind_speed: str | None = Field(None, alias="windSpeed")
    water_level: str | None = Field(None, alias="waterLevel")
    sunrise: str | None = None
    sunset: str | None = None
    moonrise: str | None = None
    moonset: str | None = None
    moon_phase: str | None = Field(None, alias="moonPhase")
    next_full_moon: str | None = Field(None, alias="nextFullMoon")
    last_updated: str = Field(..., alias="lastUpdated")


class DashboardState(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["loading", "ready", "failed"]
    snapshot: Snapshot | None = None
    error: str | None = None
    refreshing: bool = False


class CardView(BaseModel):
    key: str
    title: str
    value: str
    unit: str = ""
    section: Literal["environment", "astronomy"]


class DashboardResponse(BaseModel):
    town: str
    state: DashboardState
    cards: list[CardView] = []


class DashboardHealthResponse(BaseModel):
    status: str
    model: str
    api_key_configured: bool
    refresh_interval: int
