"""Appointment booking wizard.

The wizard is a tagged union of immutable step states. Transition functions
are pure: they take a state, check the step's preconditions and return the
next state, raising ``BookingStepError`` otherwise. ``BookingOrchestrator``
drives them and performs the network calls in between.

    ChoosingSpecialization -> ChoosingDateTimeAndDoctor -> EnteringDetails
        -> Confirming -> Submitted
"""
from __future__ import annotations
import logging
from datetime import date as Date
from typing import TYPE_CHECKING, Any, Literal, Union
from pydantic import BaseModel
from . import resources
from .availability import AvailabilityAggregator
from .config import get_settings
from .errors import (
    ApiError,
    AuthenticationExpired,
    BookingStepError,
    PatientLinkageMissing,
    ServerFault,
    SlotUnavailable,
)
from .models import DaySchedule, DoctorChoice, VisitType

if TYPE_CHECKING:
    from .client import ApiClient
    from .identity import IdentityContext

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500


class ChoosingSpecialization(BaseModel):
    model_config = {"frozen": True}

    step: Literal["choosing_specialization"] = "choosing_specialization"
    # Kept when coming back from the next step so it can be offered again.
    specialization: str | None = None


class ChoosingDateTimeAndDoctor(BaseModel):
    model_config = {"frozen": True}

    step: Literal["choosing_date_time_doctor"] = "choosing_date_time_doctor"
    specialization: str
    date: Date | None = None
    schedule: DaySchedule | None = None
    time: str | None = None
    doctor: DoctorChoice | None = None


class EnteringDetails(BaseModel):
    model_config = {"frozen": True}

    step: Literal["entering_details"] = "entering_details"
    specialization: str
    date: Date
    schedule: DaySchedule
    time: str
    doctor: DoctorChoice
    visit_type: str = VisitType.CONSULTATION
    reason: str = ""


class Confirming(BaseModel):
    model_config = {"frozen": True}

    step: Literal["confirming"] = "confirming"
    specialization: str
    date: Date
    schedule: DaySchedule
    time: str
    doctor: DoctorChoice
    visit_type: str
    reason: str


class Submitted(BaseModel):
    model_config = {"frozen": True}

    step: Literal["submitted"] = "submitted"
    specialization: str
    date: Date
    time: str
    doctor: DoctorChoice
    visit_type: str
    reason: str
    appointment_id: int


BookingState = Union[ChoosingSpecialization, ChoosingDateTimeAndDoctor, EnteringDetails, Confirming, Submitted]


def _expect(state: BookingState, *kinds: type) -> None:
    if not isinstance(state, kinds):
        expected = " or ".join(k.__name__ for k in kinds)
        raise BookingStepError(f"Not allowed at step {state.step}; expected {expected}")


# Transitions ---------------------------------------------------------------

def start() -> ChoosingSpecialization:
    return ChoosingSpecialization()


def choose_specialization(state: BookingState, specialization: str | None) -> ChoosingDateTimeAndDoctor:
    _expect(state, ChoosingSpecialization)
    if not specialization or not specialization.strip():
        raise BookingStepError("Choose a specialization")
    return ChoosingDateTimeAndDoctor(specialization=specialization.strip())


def select_date(state: BookingState, day: Date) -> ChoosingDateTimeAndDoctor:
    """Pick a date; any schedule, time and doctor chosen for another date are dropped."""
    _expect(state, ChoosingDateTimeAndDoctor)
    return ChoosingDateTimeAndDoctor(specialization=state.specialization, date=day)


def with_schedule(state: BookingState, schedule: DaySchedule) -> ChoosingDateTimeAndDoctor:
    _expect(state, ChoosingDateTimeAndDoctor)
    if (schedule.specialization, schedule.date) != (state.specialization, state.date):
        raise BookingStepError("Schedule does not belong to the current selection")
    return state.model_copy(update={"schedule": schedule, "time": None, "doctor": None})


def select_time(state: BookingState, time: str) -> ChoosingDateTimeAndDoctor:
    _expect(state, ChoosingDateTimeAndDoctor)
    if state.schedule is None:
        raise BookingStepError("Choose a date first")
    if time not in state.schedule.slots:
        raise BookingStepError(f"No doctor is available at {time}")
    return state.model_copy(update={"time": time, "doctor": None})


def select_doctor(state: BookingState, doctor_id: int) -> ChoosingDateTimeAndDoctor:
    """Explicitly pick a doctor; (date, time, doctor) must resolve to exactly one slot."""
    _expect(state, ChoosingDateTimeAndDoctor)
    if state.schedule is None or state.time is None:
        raise BookingStepError("Choose a date and time first")
    matches = [c for c in state.schedule.doctors_at(state.time) if c.doctor_id == doctor_id]
    if len(matches) != 1:
        raise BookingStepError(
            f"Doctor {doctor_id} has {len(matches)} slots at {state.time}; expected exactly one"
        )
    return state.model_copy(update={"doctor": matches[0]})


def proceed_to_details(state: BookingState) -> EnteringDetails:
    _expect(state, ChoosingDateTimeAndDoctor)
    if state.date is None or state.schedule is None:
        raise BookingStepError("Choose a date")
    if state.time is None:
        raise BookingStepError("Choose a time")
    # Never defaulted, even when a single doctor is free at this time.
    if state.doctor is None:
        raise BookingStepError("Choose a doctor")
    return EnteringDetails(
        specialization=state.specialization,
        date=state.date,
        schedule=state.schedule,
        time=state.time,
        doctor=state.doctor,
    )


def enter_details(state: BookingState, reason: str, visit_type: str = VisitType.CONSULTATION) -> Confirming:
    _expect(state, EnteringDetails)
    reason = (reason or "").strip()
    if not reason:
        raise BookingStepError("Enter the reason for the visit")
    if len(reason) > MAX_REASON_LENGTH:
        raise BookingStepError(f"Reason is longer than {MAX_REASON_LENGTH} characters")
    if visit_type not in VisitType.ALL:
        raise BookingStepError(f"Unknown visit type: {visit_type}")
    return Confirming(
        specialization=state.specialization,
        date=state.date,
        schedule=state.schedule,
        time=state.time,
        doctor=state.doctor,
        visit_type=visit_type,
        reason=reason,
    )


def back(state: BookingState) -> BookingState:
    """Return to the preceding step, dropping whatever the abandoned step captured."""
    if isinstance(state, ChoosingDateTimeAndDoctor):
        return ChoosingSpecialization(specialization=state.specialization)
    if isinstance(state, EnteringDetails):
        # The doctor has to be picked again explicitly.
        return ChoosingDateTimeAndDoctor(
            specialization=state.specialization,
            date=state.date,
            schedule=state.schedule,
            time=state.time,
        )
    if isinstance(state, Confirming):
        return EnteringDetails(
            specialization=state.specialization,
            date=state.date,
            schedule=state.schedule,
            time=state.time,
            doctor=state.doctor,
            visit_type=state.visit_type,
            reason=state.reason,
        )
    raise BookingStepError(f"Cannot go back from step {state.step}")


def return_to_slot_selection(state: BookingState) -> ChoosingDateTimeAndDoctor:
    """The chosen slot went stale; keep specialization and date, drop the rest."""
    _expect(state, Confirming)
    return ChoosingDateTimeAndDoctor(specialization=state.specialization, date=state.date)


def mark_submitted(state: BookingState, appointment_id: int) -> Submitted:
    _expect(state, Confirming)
    return Submitted(
        specialization=state.specialization,
        date=state.date,
        time=state.time,
        doctor=state.doctor,
        visit_type=state.visit_type,
        reason=state.reason,
        appointment_id=appointment_id,
    )


def _appointment_id(res: dict[str, Any]) -> int | None:
    found = res.get("appointment_id")
    if found is None and isinstance(res.get("appointment"), dict):
        found = res["appointment"].get("id")
    if found is None:
        return None
    try:
        return int(found)
    except (TypeError, ValueError):
        raise ServerFault(f"Appointment id is not a number: {found!r}", payload=res) from None


# Orchestrator --------------------------------------------------------------

class BookingOrchestrator:
    """
    Drives one booking wizard against the backend.

    Calls are sequenced by the user's transitions, never raced. A 401 from
    any call clears the session. The only retry is the single patient-linkage
    repair in ``submit``.
    """

    def __init__(
        self,
        api: ApiClient,
        identity: IdentityContext,
        aggregator: AvailabilityAggregator | None = None,
        send_patient_id: bool | None = None,
    ):
        self.api = api
        self.identity = identity
        self.aggregator = aggregator or AvailabilityAggregator(api)
        if send_patient_id is None:
            send_patient_id = get_settings().send_patient_id
        self.send_patient_id = send_patient_id
        self._state: BookingState = start()

    @property
    def state(self) -> BookingState:
        return self._state

    def _move(self, new_state: BookingState) -> BookingState:
        if new_state.step != self._state.step:
            logger.info(f"Booking step {self._state.step} -> {new_state.step}")
        self._state = new_state
        return new_state

    async def load_specializations(self) -> list[str]:
        return await self.identity.guard(resources.get_specializations(self.api))

    def choose_specialization(self, specialization: str) -> BookingState:
        return self._move(choose_specialization(self._state, specialization))

    async def select_date(self, day: Date) -> DaySchedule | None:
        """
        Pick a date and load its schedule.

        Returns None when the selection changed while the schedule was being
        fetched; the late response is discarded.
        """
        state = self._move(select_date(self._state, day))
        requested = (state.specialization, day)
        schedule = await self.identity.guard(self.aggregator.aggregate(state.specialization, day))
        current = self._state
        if not isinstance(current, ChoosingDateTimeAndDoctor) or (current.specialization, current.date) != requested:
            logger.info(f"Discarding stale schedule for {requested}")
            return None
        self._move(with_schedule(current, schedule))
        return schedule

    async def reload_schedule(self) -> DaySchedule | None:
        state = self._state
        _expect(state, ChoosingDateTimeAndDoctor)
        if state.date is None:
            raise BookingStepError("Choose a date first")
        return await self.select_date(state.date)

    def select_time(self, time: str) -> BookingState:
        return self._move(select_time(self._state, time))

    def select_doctor(self, doctor_id: int) -> BookingState:
        return self._move(select_doctor(self._state, doctor_id))

    def proceed_to_details(self) -> BookingState:
        return self._move(proceed_to_details(self._state))

    def enter_details(self, reason: str, visit_type: str = VisitType.CONSULTATION) -> BookingState:
        return self._move(enter_details(self._state, reason, visit_type))

    def back(self) -> BookingState:
        return self._move(back(self._state))

    def _payload(self, state: Confirming) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "doctor_id": state.doctor.doctor_id,
            "availability_id": state.doctor.availability_id,
            "reason": state.reason,
            "type": state.visit_type,
            "specialization": state.specialization,
        }
        if self.send_patient_id and self.identity.patient_id is not None:
            payload["patient_id"] = self.identity.patient_id
        return payload

    async def submit(self) -> int:
        """
        Create the appointment and return its id.

        A 400 about a missing patient identifier gets one repair attempt; a
        stale slot sends the wizard back to slot selection; any other failure
        leaves the wizard at the confirmation step.
        """
        state = self._state
        _expect(state, Confirming)
        payload = self._payload(state)
        try:
            res = await resources.create_appointment(self.api, payload)
        except PatientLinkageMissing as original:
            res = await self._repair(payload, original)
        except AuthenticationExpired:
            self.identity.expire()
            raise
        except SlotUnavailable:
            logger.info(f"Slot {payload['availability_id']} is no longer available")
            self._move(return_to_slot_selection(state))
            raise

        appointment_id = _appointment_id(res)
        if appointment_id is None:
            raise ServerFault("Booking response did not include an appointment identifier", payload=res)
        self._move(mark_submitted(state, appointment_id))
        logger.info(f"Appointment {appointment_id} booked")

        try:
            await self.identity.refresh_appointments()
        except ApiError as e:
            # The booking itself went through; only the list is out of date.
            logger.warning(f"Could not refresh appointments after booking: {e.message}")
        return appointment_id

    async def _repair(self, payload: dict[str, Any], original: PatientLinkageMissing) -> dict[str, Any]:
        """Resolve the caller's patient id and retry the creation exactly once."""
        logger.warning(f"Appointment rejected for missing patient linkage, retrying once: {original.message}")
        try:
            me = await resources.get_me(self.api)
            patient = await resources.get_patient_by_user(self.api, me.id)
            if patient.id is None:
                raise original
            return await resources.create_appointment(self.api, {**payload, "patient_id": patient.id})
        except AuthenticationExpired:
            self.identity.expire()
            raise
        except PatientLinkageMissing as e:
            if e is original:
                raise
            raise original from e
        except ApiError as e:
            raise original from e
