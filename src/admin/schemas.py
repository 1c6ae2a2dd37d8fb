from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from utils import is_valid_time_of_day


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    started_at: float


class ShutdownRequest(BaseModel):
    reason: str = Field(default="manual")


def _check_time(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_valid_time_of_day(value.strip()):
        raise ValueError("time must be in HH:MM 24-hour format")
    return value.strip() if value is not None else None


class MedicationCreate(BaseModel):
    name: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    time: str  # 格式 "HH:MM"
    frequency: str = ""
    stock: int = Field(default=0, ge=0)
    refill_alert: int = Field(default=0, ge=0)

    @field_validator("time")
    @classmethod
    def validate_time_format(cls, v: str) -> str:
        return _check_time(v)


class MedicationUpdate(BaseModel):
    name: Optional[str] = None
    dosage: Optional[str] = None
    time: Optional[str] = None
    frequency: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0)
    refill_alert: Optional[int] = Field(default=None, ge=0)

    @field_validator("time")
    @classmethod
    def validate_time_format(cls, v: Optional[str]) -> Optional[str]:
        return _check_time(v)


class AppointmentCreate(BaseModel):
    doctor: str = Field(min_length=1)
    date_time: str  # 本地时间 "YYYY-MM-DDTHH:MM"
    type: str = ""
    location: str = ""
    notes: str = ""


class JournalEntryCreate(BaseModel):
    date: str  # 格式 "YYYY-MM-DD"
    mood: str
    symptoms: str = ""
    notes: str = ""


class DeviceButtonPress(BaseModel):
    button: int
