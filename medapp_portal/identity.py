"""Who is calling: session-derived identity plus the profile and appointment lists
that dashboards read."""
from __future__ import annotations
import logging
from typing import TYPE_CHECKING, Awaitable, TypeVar
from . import resources
from .errors import ApiError, AuthenticationExpired, ProfileValidationError
from .models import Appointment, AppointmentStatus, LoginResult, PatientProfile
from .session import Session, SessionStore

if TYPE_CHECKING:
    from .client import ApiClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IdentityContext:
    def __init__(self, api: ApiClient, store: SessionStore | None = None):
        self.api = api
        self.store = store if store is not None else api.session_store
        self.profile: PatientProfile | None = None
        self.appointments: list[Appointment] = []

    # Session values are read from the store on every access; login and logout
    # may have changed them since the last call.
    @property
    def session(self) -> Session:
        return self.store.get()

    @property
    def patient_id(self) -> int | None:
        return self.session.patient_id

    @property
    def doctor_id(self) -> int | None:
        return self.session.doctor_id

    @property
    def user_id(self) -> int | None:
        return self.session.user_id

    @property
    def role(self) -> str | None:
        return self.session.role

    async def login(self, email: str, password: str) -> LoginResult:
        result = await resources.login(self.api, email, password)
        self.store.set(Session(
            token=result.token,
            user_id=result.user_id,
            patient_id=result.patient_id,
            doctor_id=result.doctor_id,
            role=result.role,
        ))
        logger.info(f"Logged in user_id={result.user_id} role={result.role}")
        return result

    async def logout(self) -> None:
        try:
            await resources.logout(self.api)
        finally:
            self.store.clear()
            self.profile = None
            self.appointments = []

    def expire(self) -> None:
        """Drop the stored session after the backend answered 401."""
        logger.info("Session expired; clearing stored credentials")
        self.store.clear()

    async def guard(self, coro: Awaitable[T]) -> T:
        """Await ``coro``, clearing the session if it fails with 401."""
        try:
            return await coro
        except AuthenticationExpired:
            self.expire()
            raise

    async def load_profile(self) -> PatientProfile:
        """Fetch the patient profile, by patient id first and by user id otherwise."""
        if self.patient_id is not None:
            profile = await self.guard(resources.get_patient(self.api, self.patient_id))
        elif self.user_id is not None:
            profile = await self.guard(resources.get_patient_by_user(self.api, self.user_id))
        else:
            self.expire()
            raise AuthenticationExpired("No patient or user identifier in the session", status=401)
        if not profile.email:
            try:
                me = await self.guard(resources.get_me(self.api))
                profile = profile.model_copy(update={"email": me.email})
            except AuthenticationExpired:
                raise
            except ApiError as e:
                logger.warning(f"Could not read account e-mail: {e.message}")
        self.profile = profile
        return profile

    async def save_profile(self, edited: PatientProfile) -> PatientProfile:
        """
        Validate and persist an edited profile.

        On any failure the context keeps the last known-good profile and the
        error is raised for the caller to display.
        """
        if not edited.first_name.strip() or not edited.last_name.strip():
            raise ProfileValidationError("First and last name are required")
        phone = edited.phone.strip()
        if len(phone) < 9:
            raise ProfileValidationError("Enter a valid phone number")
        patient_id = edited.id or self.patient_id or (self.profile.id if self.profile else None)
        if patient_id is None:
            raise ProfileValidationError("Patient identifier is unknown")

        edited = edited.model_copy(update={"id": patient_id, "phone": phone})
        # self.profile is only replaced once the backend accepted the edit
        await self.guard(resources.update_patient(self.api, patient_id, edited))
        self.profile = edited
        return self.profile

    async def refresh_appointments(self) -> list[Appointment]:
        if self.role == "doctor" and self.doctor_id is not None:
            appointments = await self.guard(resources.get_doctor_appointments(self.api, self.doctor_id))
        elif self.patient_id is not None:
            appointments = await self.guard(resources.get_patient_appointments(self.api, self.patient_id))
        else:
            logger.warning("No patient or doctor identifier in the session; appointment list left empty")
            appointments = []
        self.appointments = appointments
        return appointments

    @property
    def upcoming_appointments(self) -> list[Appointment]:
        return [a for a in self.appointments if a.status in AppointmentStatus.UPCOMING]

    @property
    def past_appointments(self) -> list[Appointment]:
        return [a for a in self.appointments if a.status in AppointmentStatus.PAST]

    async def complete_appointment(self, appointment_id: int) -> None:
        await self.guard(resources.complete_appointment(self.api, appointment_id))
        await self.refresh_appointments()

    async def cancel_appointment(self, appointment_id: int) -> None:
        await self.guard(resources.cancel_appointment(self.api, appointment_id))
        await self.refresh_appointments()
