"""Runtime configuration read from the environment (and a local .env file)."""
from __future__ import annotations
import os
from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


class Settings(BaseModel):
    model_config = {"frozen": True}

    base_url: str = "http://localhost:5000"
    timeout: float = 15.0
    # Whether the appointment payload carries patient_id explicitly. Depends on
    # the backend revision in force: newer ones infer it from the bearer token.
    send_patient_id: bool = False
    combined_availability: bool = False
    timezone: str | None = None
    session_file: str | None = None


def _flag(name: str) -> bool:
    return os.getenv(name, "0").strip().lower() in {"1", "true", "yes"}


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings(
        base_url=os.getenv("MEDAPP_API_BASE_URL", "http://localhost:5000").rstrip("/"),
        timeout=float(os.getenv("MEDAPP_API_TIMEOUT", "15")),
        send_patient_id=_flag("MEDAPP_SEND_PATIENT_ID"),
        combined_availability=_flag("MEDAPP_COMBINED_AVAILABILITY"),
        timezone=os.getenv("MEDAPP_TIMEZONE") or None,
        session_file=os.getenv("MEDAPP_SESSION_FILE") or None,
    )
