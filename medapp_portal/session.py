"""Persisted session values (token and caller identifiers)."""
from __future__ import annotations
import json
import logging
import os
from pathlib import Path
from pydantic import BaseModel, ValidationError
from .config import get_settings

logger = logging.getLogger(__name__)


class Session(BaseModel):
    """Immutable snapshot of the caller's session at read time."""
    model_config = {"frozen": True}

    token: str | None = None
    user_id: int | None = None
    patient_id: int | None = None
    doctor_id: int | None = None
    role: str | None = None

    @property
    def authenticated(self) -> bool:
        return bool(self.token)


class SessionStore:
    """In-memory session store. Only login, logout and a 401 write to it."""

    def __init__(self, session: Session | None = None):
        self._session = session or Session()

    def get(self) -> Session:
        return self._session

    def set(self, session: Session) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = Session()


class FileSessionStore(SessionStore):
    """Session kept in a JSON file; every ``get`` re-reads it so out-of-band logins are seen."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)

    def get(self) -> Session:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Session()
        try:
            return Session.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            logger.warning(f"Ignoring unreadable session file {self.path}")
            return Session()

    def set(self, session: Session) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(session.model_dump_json(), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


def build_session_store() -> SessionStore:
    session_file = get_settings().session_file
    if session_file:
        return FileSessionStore(session_file)
    return SessionStore()
