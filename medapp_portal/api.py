from datetime import date as Date
from typing import AsyncIterator, Optional
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from . import resources
from .availability import AvailabilityAggregator
from .booking import BookingOrchestrator
from .client import ApiClient
from .errors import (
    ApiError,
    AvailabilityIncomplete,
    BookingStepError,
    NetworkFailure,
    ProfileValidationError,
    RequestTimeout,
    SlotUnavailable,
)
from .identity import IdentityContext
from .models import Appointment, DoctorChoice, LoginResult, PatientProfile, VisitType
from .session import Session, SessionStore

# HTTPBearer scheme so Swagger-UI can attach the Authorization header globally
auth_scheme = HTTPBearer(auto_error=False)

app = FastAPI(title="MedApp Portal")


class LoginRequest(BaseModel):
    email: str
    password: str


class ScheduleResp(BaseModel):
    specialization: str
    date: Date
    times: list[str]
    slots: dict[str, list[DoctorChoice]]


class BookRequest(BaseModel):
    specialization: str
    date: Date
    time: str = Field(description="HH:MM as listed by /availability")
    doctor_id: int
    reason: str
    type: str = VisitType.CONSULTATION
    patient_id: Optional[int] = None


class BookResponse(BaseModel):
    appointment_id: int


class PatientUpdate(BaseModel):
    first_name: str
    last_name: str
    pesel: str = ""
    phone: str


def _token(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    return credentials.credentials


async def get_api(credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)) -> AsyncIterator[ApiClient]:
    """One backend client per request, carrying the caller's bearer token."""
    async with ApiClient(session_store=SessionStore(Session(token=_token(credentials)))) as api:
        yield api


def require_token(credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)):
    if not _token(credentials):
        raise HTTPException(status_code=401, detail="Missing bearer token")


# Error mapping -------------------------------------------------------------

def _status(exc: ApiError) -> int:
    if isinstance(exc, SlotUnavailable):
        return 409
    if isinstance(exc, RequestTimeout):
        return 504
    if isinstance(exc, (NetworkFailure, AvailabilityIncomplete)):
        return 502
    return exc.status or 502


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=_status(exc), content={"detail": exc.message})


@app.exception_handler(BookingStepError)
@app.exception_handler(ProfileValidationError)
async def validation_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# Auth ----------------------------------------------------------------------

@app.post("/login", response_model=LoginResult)
async def login(req: LoginRequest, api: ApiClient = Depends(get_api)):
    return await IdentityContext(api).login(req.email, req.password)


@app.post("/logout", dependencies=[Depends(require_token)], status_code=204)
async def logout(api: ApiClient = Depends(get_api)):
    await IdentityContext(api).logout()
    return None


# Booking -------------------------------------------------------------------

@app.get("/specializations", dependencies=[Depends(require_token)])
async def list_specializations(api: ApiClient = Depends(get_api)):
    return {"specializations": await resources.get_specializations(api)}


@app.get("/availability", dependencies=[Depends(require_token)], response_model=ScheduleResp)
async def list_availability(
    specialization: str = Query(...),
    day: Date = Query(..., alias="date", description="YYYY-MM-DD"),
    api: ApiClient = Depends(get_api),
):
    """Bookable times of one day with the doctors free at each time."""
    schedule = await AvailabilityAggregator(api).aggregate(specialization, day)
    return ScheduleResp(
        specialization=schedule.specialization,
        date=schedule.date,
        times=schedule.times,
        slots=schedule.slots,
    )


@app.post("/appointments", dependencies=[Depends(require_token)], response_model=BookResponse, status_code=201)
async def book_appointment(req: BookRequest, api: ApiClient = Depends(get_api)):
    """Run the booking wizard for one request, re-checking the slot against fresh availability."""
    if req.patient_id is not None:
        api.session_store.set(api.session_store.get().model_copy(update={"patient_id": req.patient_id}))
    orchestrator = BookingOrchestrator(api, IdentityContext(api))
    orchestrator.choose_specialization(req.specialization)
    if await orchestrator.select_date(req.date) is None:
        raise HTTPException(status_code=409, detail="Selection changed while loading availability")
    try:
        orchestrator.select_time(req.time)
        orchestrator.select_doctor(req.doctor_id)
    except BookingStepError as e:
        raise HTTPException(status_code=409, detail=str(e))
    orchestrator.proceed_to_details()
    orchestrator.enter_details(req.reason, req.type)
    return BookResponse(appointment_id=await orchestrator.submit())


# Patient dashboard ---------------------------------------------------------

@app.get("/patients/{patient_id}", dependencies=[Depends(require_token)], response_model=PatientProfile)
async def get_patient(patient_id: int, api: ApiClient = Depends(get_api)):
    return await resources.get_patient(api, patient_id)


@app.patch("/patients/{patient_id}", dependencies=[Depends(require_token)], response_model=PatientProfile)
async def update_patient(patient_id: int, req: PatientUpdate, api: ApiClient = Depends(get_api)):
    identity = IdentityContext(api)
    return await identity.save_profile(PatientProfile(id=patient_id, **req.model_dump()))


@app.get("/patients/{patient_id}/appointments", dependencies=[Depends(require_token)], response_model=list[Appointment])
async def patient_appointments(
    patient_id: int,
    when: Optional[str] = Query(None, pattern="^(upcoming|past)$"),
    api: ApiClient = Depends(get_api),
):
    return await resources.get_patient_appointments(api, patient_id, when)


# Doctor dashboard ----------------------------------------------------------

@app.get("/doctors/{doctor_id}/appointments", dependencies=[Depends(require_token)], response_model=list[Appointment])
async def doctor_appointments(doctor_id: int, api: ApiClient = Depends(get_api)):
    return await resources.get_doctor_appointments(api, doctor_id)


@app.patch("/appointments/{appointment_id}/complete", dependencies=[Depends(require_token)])
async def complete_appointment(appointment_id: int, api: ApiClient = Depends(get_api)):
    await resources.complete_appointment(api, appointment_id)
    return {"message": "completed", "appointment_id": appointment_id}


@app.patch("/appointments/{appointment_id}/cancel", dependencies=[Depends(require_token)])
async def cancel_appointment(appointment_id: int, api: ApiClient = Depends(get_api)):
    await resources.cancel_appointment(api, appointment_id)
    return {"message": "cancelled", "appointment_id": appointment_id}
