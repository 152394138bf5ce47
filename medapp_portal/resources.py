"""Per-resource calls against the MedApp backend.

Each function only templates the URL and translates wire shapes into models;
errors from the gateway propagate unchanged.
"""
from __future__ import annotations
import logging
from datetime import date
from typing import TYPE_CHECKING, Any
from urllib.parse import quote
from pydantic import ValidationError
from . import normalize
from .errors import ServerFault
from .models import (
    Appointment,
    AvailabilitySlot,
    Doctor,
    LoginResult,
    Notification,
    PatientProfile,
    Prescription,
    PrescriptionItem,
    User,
)

if TYPE_CHECKING:
    from .client import ApiClient

logger = logging.getLogger(__name__)


def _object(payload: Any, key: str) -> dict[str, Any]:
    found = normalize.extract_object(payload, key)
    if found is None:
        raise ServerFault(f"Response did not include '{key}'", payload=payload)
    return found


# Auth ----------------------------------------------------------------------

async def login(api: ApiClient, email: str, password: str) -> LoginResult:
    res = await api.post("/auth/login", {"email": email, "password": password})
    if not isinstance(res, dict) or not res.get("token"):
        raise ServerFault("Login response did not include a token", payload=res)
    return LoginResult.model_validate(res)


async def logout(api: ApiClient) -> None:
    await api.post("/auth/logout")


async def get_me(api: ApiClient) -> User:
    return User.model_validate(_object(await api.get("/auth/me"), "user"))


# Doctors -------------------------------------------------------------------

async def get_specializations(api: ApiClient) -> list[str]:
    return normalize.specialization_names(await api.get("/doctor/specializations"))


async def get_doctors_by_specialization(api: ApiClient, specialization: str) -> list[Doctor]:
    res = await api.get(f"/doctor/specialization/{quote(specialization, safe='')}")
    return [Doctor.model_validate(d) for d in normalize.doctor_records(res)]


async def get_doctor(api: ApiClient, doctor_id: int) -> Doctor:
    return Doctor.model_validate(_object(await api.get(f"/doctor/{doctor_id}"), "doctor"))


async def update_doctor(api: ApiClient, doctor_id: int, **fields: Any) -> Any:
    """Accepted fields: first_name, last_name, license_number, specialization."""
    allowed = {"first_name", "last_name", "license_number", "specialization"}
    body = {k: v for k, v in fields.items() if k in allowed and v is not None}
    return await api.patch(f"/doctor/{doctor_id}", body)


async def delete_doctor(api: ApiClient, doctor_id: int) -> Any:
    return await api.delete(f"/doctor/{doctor_id}")


# Availability --------------------------------------------------------------

def _slots(payload: Any) -> list[AvailabilitySlot]:
    slots = []
    for record in normalize.availability_records(payload):
        try:
            slots.append(AvailabilitySlot.model_validate(record))
        except ValidationError as e:
            logger.warning(f"Skipping malformed availability record {record!r}: {e.error_count()} error(s)")
    return slots


async def get_doctor_availability(api: ApiClient, doctor_id: int) -> list[AvailabilitySlot]:
    res = await api.get(f"/availability/doctor/{doctor_id}")
    return _slots(res)


async def get_availability(api: ApiClient, specialization: str, day: date) -> list[AvailabilitySlot]:
    res = await api.get(
        "/availability",
        params={"specialization": specialization, "date": day.isoformat()},
    )
    return _slots(res)


async def create_availability(
    api: ApiClient,
    doctor_id: int,
    start_time: str,
    end_time: str,
    is_available: bool = True,
) -> Any:
    return await api.post("/availability", {
        "doctor_id": doctor_id,
        "start_time": start_time,
        "end_time": end_time,
        "is_available": is_available,
    })


async def update_availability(api: ApiClient, availability_id: int, **fields: Any) -> Any:
    allowed = {"start_time", "end_time", "is_available"}
    body = {k: v for k, v in fields.items() if k in allowed}
    return await api.patch(f"/availability/{availability_id}", body)


async def delete_availability(api: ApiClient, availability_id: int) -> Any:
    return await api.delete(f"/availability/{availability_id}")


# Appointments --------------------------------------------------------------

async def create_appointment(api: ApiClient, payload: dict[str, Any]) -> dict[str, Any]:
    """POST the booking request and return the raw response (expects ``appointment_id``)."""
    res = await api.post("/appointment/", {k: v for k, v in payload.items() if v is not None})
    return res if isinstance(res, dict) else {}


async def get_appointment(api: ApiClient, appointment_id: int) -> Appointment:
    res = await api.get(f"/appointment/{appointment_id}")
    return Appointment.model_validate(_object(res, "appointment"))


async def get_patient_appointments(
    api: ApiClient, patient_id: int, when: str | None = None
) -> list[Appointment]:
    """``when`` narrows to "upcoming" or "past"; None lists everything."""
    path = f"/appointment/patient/{patient_id}"
    if when:
        if when not in ("upcoming", "past"):
            raise ValueError(f"Unknown appointment filter: {when}")
        path = f"{path}/{when}"
    res = await api.get(path)
    return [Appointment.model_validate(a) for a in normalize.appointment_records(res)]


async def get_doctor_appointments(api: ApiClient, doctor_id: int) -> list[Appointment]:
    res = await api.get(f"/appointment/doctor/{doctor_id}")
    return [Appointment.model_validate(a) for a in normalize.appointment_records(res)]


async def complete_appointment(api: ApiClient, appointment_id: int) -> Any:
    return await api.patch(f"/appointment/{appointment_id}/complete")


async def cancel_appointment(api: ApiClient, appointment_id: int) -> Any:
    return await api.patch(f"/appointment/{appointment_id}/cancel")


async def delete_appointment(api: ApiClient, appointment_id: int) -> Any:
    return await api.delete(f"/appointment/{appointment_id}")


# Patients ------------------------------------------------------------------

async def get_patient(api: ApiClient, patient_id: int) -> PatientProfile:
    return PatientProfile.model_validate(_object(await api.get(f"/patient/{patient_id}"), "patient"))


async def update_patient(api: ApiClient, patient_id: int, profile: PatientProfile) -> Any:
    body = profile.model_dump(include={"first_name", "last_name", "pesel", "phone"})
    return await api.patch(f"/patient/{patient_id}", body)


# Users ---------------------------------------------------------------------

async def get_pending_users(api: ApiClient) -> list[User]:
    return [User.model_validate(u) for u in normalize.user_records(await api.get("/user/pending"))]


async def get_patient_by_user(api: ApiClient, user_id: int) -> PatientProfile:
    res = await api.get(f"/user/patient/{user_id}")
    return PatientProfile.model_validate(_object(res, "patient"))


async def get_doctor_by_user(api: ApiClient, user_id: int) -> Doctor:
    return Doctor.model_validate(_object(await api.get(f"/user/doctor/{user_id}"), "doctor"))


async def register_patient(
    api: ApiClient,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    pesel: str,
    phone: str,
) -> Any:
    return await api.post("/user/register", {
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "password": password,
        "pesel": pesel,
        "phone": phone,
    })


async def register_doctor(
    api: ApiClient,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    specialization: str,
    license_number: str,
) -> Any:
    return await api.post("/user/register/doctor", {
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "password": password,
        "specialization": specialization,
        "license_number": license_number,
    })


async def activate_user(api: ApiClient, user_id: int) -> Any:
    return await api.patch(f"/user/{user_id}/activate")


async def delete_user(api: ApiClient, user_id: int) -> Any:
    return await api.delete(f"/user/{user_id}")


# Notifications -------------------------------------------------------------

async def get_notifications(api: ApiClient, user_id: int) -> list[Notification]:
    res = await api.get(f"/notification/{user_id}")
    return [Notification.model_validate(n) for n in normalize.notification_records(res)]


async def mark_notification_read(api: ApiClient, notification_id: int) -> Any:
    return await api.post(f"/notification/{notification_id}/read")


# Prescriptions -------------------------------------------------------------

async def create_prescription(
    api: ApiClient,
    patient_id: int,
    doctor_id: int,
    appointment_id: int,
    items: list[PrescriptionItem],
    notes: str = "",
) -> Any:
    return await api.post("/prescription/create", {
        "patient_id": patient_id,
        "doctor_id": doctor_id,
        "appointment_id": appointment_id,
        "notes": notes,
        "prescription_items": [i.model_dump() for i in items],
    })


async def get_prescription(api: ApiClient, prescription_id: int) -> Prescription:
    res = await api.get(f"/prescription/{prescription_id}")
    return Prescription.model_validate(_object(res, "prescription"))


async def get_patient_prescriptions(api: ApiClient, patient_id: int) -> list[Prescription]:
    res = await api.get(f"/prescription/patient/{patient_id}")
    return [Prescription.model_validate(p) for p in normalize.prescription_records(res)]


async def get_doctor_prescriptions(api: ApiClient, doctor_id: int) -> list[Prescription]:
    res = await api.get(f"/prescription/doctor/{doctor_id}")
    return [Prescription.model_validate(p) for p in normalize.prescription_records(res)]


async def delete_prescription(api: ApiClient, prescription_id: int) -> Any:
    return await api.delete(f"/prescription/{prescription_id}")
