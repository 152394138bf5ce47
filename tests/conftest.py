import json
import pathlib
import pytest
import pytest_asyncio
from medapp_portal.client import ApiClient
from medapp_portal.session import Session, SessionStore

FIX = pathlib.Path(__file__).parent / "fixtures"
BASE = "http://medapp.test"


def fixture(name: str):
    return json.loads((FIX / name).read_text(encoding="utf-8"))


@pytest.fixture
def store():
    return SessionStore(Session(token="tok-123", user_id=15, patient_id=3, role="patient"))


@pytest_asyncio.fixture
async def api(store):
    async with ApiClient(base_url=BASE, timeout=5, session_store=store) as client:
        yield client
