"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from services.alerts import AlertLevel


class ReadingCreate(BaseModel):
    """Payload for appending a reading; the server assigns the timestamp."""

    ph: float = Field(..., description="Digester pH.")
    temp: float = Field(..., description="Slurry temperature in °C.")
    laju: float = Field(..., description="Gas flow rate in litres per minute.")


class ReadingCreated(BaseModel):
    """Immediate response payload after storing a reading."""

    id: str = Field(..., description="Identifier assigned by the readings store.")


class ReadingOut(BaseModel):
    """A normalized reading; missing metrics stay ``null``."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    timestamp: Optional[datetime] = None
    ph: Optional[float] = None
    temp: Optional[float] = None
    laju: Optional[float] = None


class DailyVolume(BaseModel):
    """Integrated gas volume for one local calendar day."""

    model_config = ConfigDict(from_attributes=True)

    day: date
    total_liters: float


class TopValuesOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ph: Optional[float] = None
    temp: Optional[float] = None
    laju: Optional[float] = None


class DashboardSnapshot(BaseModel):
    """Chart series for the current window plus the summary card values."""

    model_config = ConfigDict(from_attributes=True)

    labels: List[str] = Field(
        default_factory=list,
        description="Local wall-clock labels formatted YYYY-MM-DD HH:MM:SS.",
    )
    ph: List[Optional[float]] = Field(default_factory=list)
    temp: List[Optional[float]] = Field(default_factory=list)
    laju: List[Optional[float]] = Field(default_factory=list)
    daily_volume: List[DailyVolume] = Field(default_factory=list)
    top: TopValuesOut = Field(default_factory=TopValuesOut)
    latest_id: Optional[str] = None
    updated_at: Optional[datetime] = None


class AlertEventOut(BaseModel):
    """An alert as shown to the operator."""

    model_config = ConfigDict(from_attributes=True)

    key: str
    title: str
    message: str
    metric: str
    value: Optional[float] = None
    bound: Optional[float] = None
    level: AlertLevel
    fired_at: datetime
