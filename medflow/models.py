"""Pydantic models for appointments, scheduling constraints and slots."""
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


# Statuses that still occupy a slot on the calendar
ACTIVE_STATUSES = frozenset({AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED})


class Appointment(BaseModel):
    """One booked consultation. ``date_time`` is naive local wall-clock time."""
    id: str = Field(..., min_length=1, description="Opaque appointment identifier")
    patient_name: str = Field(..., description="Patient display name")
    patient_email: Optional[str] = Field(None, description="Patient email")
    patient_phone: Optional[str] = Field(None, description="Patient phone")
    date_time: datetime = Field(..., description="Start of the appointment (local time)")
    duration: Optional[int] = Field(
        None,
        gt=0,
        description="Duration in minutes; None falls back to the slot duration"
    )
    status: AppointmentStatus = Field(default=AppointmentStatus.SCHEDULED)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "apt-1001",
                "patient_name": "Ion Popescu",
                "patient_email": "ion.popescu@example.ro",
                "date_time": "2026-01-14T09:00:00",
                "duration": 45,
                "status": "scheduled"
            }
        }
    )

    def end_time(self, default_duration: int) -> datetime:
        """End of the booked interval, using ``default_duration`` when unset."""
        return self.date_time + timedelta(minutes=self.duration or default_duration)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class SchedulingConstraints(BaseModel):
    """
    Clinic availability used to enumerate slots.

    Weekdays follow the 0=Sunday..6=Saturday convention. ``work_end_hour``
    is exclusive.
    """
    work_days: Set[int] = Field(..., description="Active weekdays (0=Sunday..6=Saturday)")
    work_start_hour: int = Field(..., ge=0, le=23)
    work_end_hour: int = Field(..., ge=1, le=24)
    slot_duration: int = Field(..., gt=0, le=24 * 60, description="Slot length in minutes")

    @field_validator("work_days")
    @classmethod
    def validate_work_days(cls, v):
        invalid = [day for day in v if day < 0 or day > 6]
        if invalid:
            raise ValueError(f"Weekdays must be in 0..6, got {sorted(invalid)}")
        return v

    @model_validator(mode="after")
    def check_work_window(self):
        if self.work_start_hour >= self.work_end_hour:
            raise ValueError(
                f"work_start_hour ({self.work_start_hour}) must be before "
                f"work_end_hour ({self.work_end_hour})"
            )
        return self


class TimeSlot(BaseModel):
    """A candidate appointment window."""
    start: datetime
    end: datetime
    available: bool
    appointment_id: Optional[str] = Field(
        None,
        description="Appointment occupying this slot, when unavailable because of a booking"
    )
    reason: Optional[str] = Field(None, description="Why the slot is unavailable")

    @property
    def label(self) -> str:
        """Short ``HH:MM - HH:MM`` label for slot lists."""
        return f"{self.start.strftime('%H:%M')} - {self.end.strftime('%H:%M')}"


class RescheduleRequest(BaseModel):
    """Reschedule intent sent to the appointment store."""
    appointment_id: str = Field(..., min_length=1)
    new_date_time: datetime
    reason: Optional[str] = Field(None, max_length=1000)
    patient_name: str = ""
    patient_email: str = ""


class RescheduleForm(BaseModel):
    """Data captured by the reschedule confirmation form."""
    patient_name: str = ""
    patient_email: str = ""
    reason: Optional[str] = Field(None, max_length=1000)
