"""Error taxonomy for calls against the MedApp backend."""
from __future__ import annotations
import re
from typing import Any

# Messages the backend uses when an account was created without patient linkage.
PATIENT_LINKAGE_RE = re.compile(r"patient[_\s-]?id|patientId|missing patient", re.IGNORECASE)
SLOT_TAKEN_RE = re.compile(
    r"already (booked|taken|reserved)|not available|unavailable|zaj[eę]t|niedost[eę]pn",
    re.IGNORECASE,
)


class ApiError(Exception):
    """
    Failed backend call.

    Attributes:
        status: HTTP status code, or None for transport-level failures
        message: Human-readable description (backend message when provided)
        payload: Parsed response body, if any
    """

    def __init__(self, message: str, status: int | None = None, payload: Any = None):
        self.status = status
        self.message = message
        self.payload = payload
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status!r}, message={self.message!r})"


class NetworkFailure(ApiError):
    """Connection could not be established or was dropped."""


class RequestTimeout(NetworkFailure):
    def __init__(self, message: str = "Request timed out"):
        super().__init__(message)


class AuthenticationExpired(ApiError):
    """401 - the stored token is missing, invalid or expired."""


class ValidationRejected(ApiError):
    """400 - the backend refused the request body."""


class PatientLinkageMissing(ValidationRejected):
    """400 caused by an account without a linked patient record."""


class SlotUnavailable(ValidationRejected):
    """The chosen availability slot was booked by somebody else."""


class ResourceNotFound(ApiError):
    """404"""


class ServerFault(ApiError):
    """5xx or any status we do not classify."""


class AvailabilityIncomplete(ApiError):
    """One or more availability lookups failed; the aggregate would be partial."""

    def __init__(self, errors: list[ApiError]):
        self.errors = errors
        detail = "; ".join(e.message for e in errors)
        super().__init__(f"Could not load availability for every doctor: {detail}")


class BookingStepError(ValueError):
    """A wizard transition was attempted without its preconditions."""


class ProfileValidationError(ValueError):
    """Edited patient profile failed local validation."""


def classify(status: int, message: str, payload: Any = None) -> ApiError:
    """Map an HTTP failure onto the error taxonomy."""
    if status == 400:
        if PATIENT_LINKAGE_RE.search(message):
            return PatientLinkageMissing(message, status, payload)
        if SLOT_TAKEN_RE.search(message):
            return SlotUnavailable(message, status, payload)
        return ValidationRejected(message, status, payload)
    if status == 401:
        return AuthenticationExpired(message, status, payload)
    if status == 404:
        return ResourceNotFound(message, status, payload)
    if status == 409:
        return SlotUnavailable(message, status, payload)
    return ServerFault(message, status, payload)
