"""Reduce raw availability slots into a time -> doctors lookup for one day."""
from __future__ import annotations
import asyncio
import logging
from collections import defaultdict
from datetime import date, tzinfo
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo
from . import resources
from .config import get_settings
from .errors import ApiError, AuthenticationExpired, AvailabilityIncomplete, ResourceNotFound
from .models import AvailabilitySlot, DaySchedule, Doctor, DoctorChoice
from .normalize import calendar_date, time_of_day

if TYPE_CHECKING:
    from .client import ApiClient

logger = logging.getLogger(__name__)


class AvailabilityAggregator:
    """
    Builds a ``DaySchedule`` for a specialization and date.

    Per-doctor lookups run concurrently and all of them are awaited. A doctor
    whose availability is 404 simply has no slots; any other failure makes
    the whole aggregate fail with ``AvailabilityIncomplete`` rather than
    returning a silently shortened schedule.
    """

    def __init__(self, api: ApiClient, combined: bool | None = None, tz: tzinfo | None = None):
        settings = get_settings()
        self.api = api
        self.combined = settings.combined_availability if combined is None else combined
        if tz is None and settings.timezone:
            tz = ZoneInfo(settings.timezone)
        self.tz = tz

    async def aggregate(self, specialization: str, day: date) -> DaySchedule:
        doctors = await resources.get_doctors_by_specialization(self.api, specialization)
        if not doctors:
            logger.info(f"No doctors for specialization {specialization!r}")
            return DaySchedule(specialization=specialization, date=day)

        if self.combined:
            slots = await self._combined_slots(specialization, day)
        else:
            slots = await self._per_doctor_slots(doctors)

        schedule = self._group(specialization, day, doctors, slots)
        logger.info(
            f"Availability for {specialization!r} on {day}: "
            f"{len(schedule.slots)} times across {len(doctors)} doctors"
        )
        return schedule

    async def _combined_slots(self, specialization: str, day: date) -> list[AvailabilitySlot]:
        try:
            return await resources.get_availability(self.api, specialization, day)
        except ResourceNotFound:
            return []

    async def _per_doctor_slots(self, doctors: list[Doctor]) -> list[AvailabilitySlot]:
        outcomes = await asyncio.gather(
            *(resources.get_doctor_availability(self.api, d.id) for d in doctors),
            return_exceptions=True,
        )
        slots: list[AvailabilitySlot] = []
        failures: list[ApiError] = []
        for doctor, outcome in zip(doctors, outcomes):
            if isinstance(outcome, ResourceNotFound):
                logger.debug(f"Doctor {doctor.id} has no availability (404)")
            elif isinstance(outcome, ApiError):
                logger.warning(f"Availability lookup failed for doctor {doctor.id}: {outcome.message}")
                failures.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                slots.extend(outcome)
        for failure in failures:
            if isinstance(failure, AuthenticationExpired):
                raise failure
        if failures:
            raise AvailabilityIncomplete(failures)
        return slots

    def _group(
        self,
        specialization: str,
        day: date,
        doctors: list[Doctor],
        slots: list[AvailabilitySlot],
    ) -> DaySchedule:
        by_id = {d.id: d for d in doctors}
        grouped: dict[str, list[DoctorChoice]] = defaultdict(list)
        for slot in slots:
            # Unknown availability is not offered.
            if slot.is_available is not True:
                continue
            doctor = by_id.get(slot.doctor_id)
            if doctor is None:
                logger.debug(f"Skipping slot {slot.id} of doctor {slot.doctor_id} outside {specialization!r}")
                continue
            if calendar_date(slot.start_time, self.tz) != day:
                continue
            hhmm = time_of_day(slot.start_time, self.tz)
            if hhmm is None:
                continue
            grouped[hhmm].append(DoctorChoice(
                availability_id=slot.id,
                doctor_id=doctor.id,
                doctor_name=doctor.full_name,
                specialization=doctor.specialization or specialization,
                license_number=doctor.license_number,
            ))
        ordered = {
            t: sorted(grouped[t], key=lambda c: (c.doctor_name, c.doctor_id, c.availability_id))
            for t in sorted(grouped)
        }
        return DaySchedule(specialization=specialization, date=day, slots=ordered)
