"""Appointment requests submitted from the public booking form."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from app.models.base import LyceumDocument

AppointmentStatus = Literal["pending", "accepted", "rejected"]


class Appointment(LyceumDocument):
    name: str
    phone: str
    email: str = Field(pattern=r".+@.+\..+")
    appointment_date: datetime
    organization: Optional[str] = None
    estimated_attendees: Optional[int] = Field(default=None, ge=0)
    message: Optional[str] = None
    status: AppointmentStatus = "pending"

    class Settings:
        name = "appointments"
