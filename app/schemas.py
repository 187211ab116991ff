"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from models.records import TimedSensorValues


class SensorListResponse(BaseModel):
    """Sensors that have been provisioned in the store."""

    sensors: List[str] = Field(default_factory=list)


class ReadingsResponse(BaseModel):
    """Readings stored for one sensor inside a query window."""

    sensor_id: str
    start: datetime = Field(..., description="Truncated lower bound of the window.")
    end: datetime = Field(..., description="Truncated upper bound of the window.")
    count: int = Field(..., ge=0)
    readings: List[TimedSensorValues] = Field(default_factory=list)
