from __future__ import annotations
from datetime import date as Date
from pydantic import AliasChoices, BaseModel, Field

_WIRE = {"populate_by_name": True, "extra": "ignore"}


class AppointmentStatus:
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"

    UPCOMING = frozenset({SCHEDULED, IN_PROGRESS})
    PAST = frozenset({COMPLETED, CANCELLED, NO_SHOW})


class VisitType:
    CONSULTATION = "consultation"
    FOLLOW_UP = "follow-up"
    PROCEDURE = "procedure"
    EMERGENCY = "emergency"

    ALL = frozenset({CONSULTATION, FOLLOW_UP, PROCEDURE, EMERGENCY})


class LoginResult(BaseModel):
    model_config = _WIRE

    token: str
    user_id: int | None = None
    patient_id: int | None = None
    doctor_id: int | None = None
    role: str | None = None


class User(BaseModel):
    model_config = _WIRE

    id: int
    first_name: str = Field("", validation_alias=AliasChoices("first_name", "firstName"))
    last_name: str = Field("", validation_alias=AliasChoices("last_name", "lastName"))
    email: str = ""
    role: str = "patient"
    is_active: bool = False
    created_at: str | None = Field(None, validation_alias=AliasChoices("created_at", "createdAt"))


class Doctor(BaseModel):
    model_config = _WIRE

    id: int
    user_id: int | None = None
    first_name: str = ""
    last_name: str = ""
    specialization: str = ""
    license_number: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class AvailabilitySlot(BaseModel):
    """One offerable interval of a doctor's schedule."""
    model_config = _WIRE

    id: int
    doctor_id: int = Field(validation_alias=AliasChoices("doctor_id", "doctorId", "doctor_Id"))
    start_time: str = Field(validation_alias=AliasChoices("start_time", "startTime"))  # ISO / SQL / RFC 1123
    end_time: str | None = Field(None, validation_alias=AliasChoices("end_time", "endTime"))
    # None means the backend did not say; treated as not bookable
    is_available: bool | None = Field(None, validation_alias=AliasChoices("is_available", "isAvailable"))


class Appointment(BaseModel):
    model_config = _WIRE

    id: int
    patient_id: int | None = None
    doctor_id: int | None = None
    availability_id: int | None = None
    appointment_date: str | None = None
    status: str | None = None
    created_at: str | None = None
    reason: str | None = None
    type: str | None = None


class PatientProfile(BaseModel):
    model_config = _WIRE

    id: int | None = None
    first_name: str = ""
    last_name: str = ""
    pesel: str = ""
    birth_date: str = ""
    phone: str = ""
    email: str = ""


class Notification(BaseModel):
    model_config = _WIRE

    id: int
    user_id: int | None = None
    message: str = ""
    is_read: bool = False
    created_at: str | None = None


class PrescriptionItem(BaseModel):
    medication_name: str
    dosage: str
    instructions: str = ""


class Prescription(BaseModel):
    model_config = _WIRE

    id: int | None = None
    patient_id: int | None = None
    doctor_id: int | None = None
    appointment_id: int | None = None
    notes: str = ""
    prescription_items: list[PrescriptionItem] = Field(
        default_factory=list, validation_alias=AliasChoices("prescription_items", "items")
    )


class DoctorChoice(BaseModel):
    """A doctor offered at a given time, tied to the slot that would be booked."""
    model_config = {"frozen": True}

    availability_id: int
    doctor_id: int
    doctor_name: str
    specialization: str
    license_number: str | None = None


class DaySchedule(BaseModel):
    """Bookable times of one day, each mapped to the doctors free at that time."""
    model_config = {"frozen": True}

    specialization: str
    date: Date
    slots: dict[str, list[DoctorChoice]] = Field(default_factory=dict)

    @property
    def times(self) -> list[str]:
        return sorted(self.slots)

    def doctors_at(self, time: str) -> list[DoctorChoice]:
        return list(self.slots.get(time, []))
