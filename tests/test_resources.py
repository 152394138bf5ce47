import json
from datetime import date
import pytest
import respx
from conftest import BASE, fixture
from medapp_portal import resources
from medapp_portal.errors import ResourceNotFound, ServerFault
from medapp_portal.models import PrescriptionItem


@pytest.mark.asyncio
async def test_doctors_by_specialization(api):
    with respx.mock(base_url=BASE) as m:
        m.get("/doctor/specialization/Kardiologia").respond(200, json=fixture("doctors_kardiologia.json"))

        doctors = await resources.get_doctors_by_specialization(api, "Kardiologia")

    assert [d.id for d in doctors] == [5, 7]
    assert doctors[0].full_name == "Anna Nowak"
    assert doctors[1].license_number == "PWZ-7654321"


@pytest.mark.asyncio
async def test_specialization_is_path_quoted(api):
    with respx.mock(base_url=BASE) as m:
        route = m.route(method="GET", path__startswith="/doctor/specialization/").respond(200, json={"doctors": []})

        assert await resources.get_doctors_by_specialization(api, "Medycyna rodzinna") == []
        assert route.calls.last.request.url.raw_path == b"/doctor/specialization/Medycyna%20rodzinna"


@pytest.mark.asyncio
async def test_doctor_availability_accepts_camel_case(api):
    with respx.mock(base_url=BASE) as m:
        m.get("/availability/doctor/7").respond(200, json=fixture("availability_doctor_7.json"))

        slots = await resources.get_doctor_availability(api, 7)

    assert [s.id for s in slots] == [71, 72, 73]
    assert slots[0].start_time == "2025-03-10 09:00:00"
    assert slots[1].is_available is True
    assert slots[2].is_available is None


@pytest.mark.asyncio
async def test_not_found_propagates(api):
    with respx.mock(base_url=BASE) as m:
        m.get("/availability/doctor/9").respond(404, json={"message": "Doctor not found"})

        with pytest.raises(ResourceNotFound):
            await resources.get_doctor_availability(api, 9)


@pytest.mark.asyncio
async def test_combined_availability_params(api):
    with respx.mock(base_url=BASE) as m:
        route = m.get("/availability").respond(200, json={"availabilities": []})

        assert await resources.get_availability(api, "Neurologia", date(2025, 3, 10)) == []
        assert route.calls.last.request.url.params["date"] == "2025-03-10"


@pytest.mark.asyncio
async def test_create_appointment_drops_empty_fields(api):
    with respx.mock(base_url=BASE) as m:
        route = m.post("/appointment/").respond(201, json={"appointment_id": 1001})

        res = await resources.create_appointment(api, {"doctor_id": 5, "availability_id": 42, "reason": None})

    assert res == {"appointment_id": 1001}
    assert json.loads(route.calls.last.request.content) == {"doctor_id": 5, "availability_id": 42}


@pytest.mark.asyncio
async def test_upcoming_appointments_path(api):
    with respx.mock(base_url=BASE) as m:
        m.get("/appointment/patient/3/upcoming").respond(200, json=fixture("appointments_patient.json"))

        appointments = await resources.get_patient_appointments(api, 3, "upcoming")

    assert appointments[0].availability_id == 42
    with pytest.raises(ValueError):
        await resources.get_patient_appointments(api, 3, "tomorrow")


@pytest.mark.asyncio
async def test_get_appointment_requires_object(api):
    with respx.mock(base_url=BASE) as m:
        m.get("/appointment/1").respond(200, json={"status": "success"})

        with pytest.raises(ServerFault):
            await resources.get_appointment(api, 1)


@pytest.mark.asyncio
async def test_status_transitions(api):
    with respx.mock(base_url=BASE) as m:
        complete = m.patch("/appointment/1/complete").respond(200, json={"status": "success"})
        cancel = m.patch("/appointment/2/cancel").respond(200, json={"status": "success"})

        await resources.complete_appointment(api, 1)
        await resources.cancel_appointment(api, 2)

    assert complete.called and cancel.called


@pytest.mark.asyncio
async def test_pending_users(api):
    with respx.mock(base_url=BASE) as m:
        m.get("/user/pending").respond(200, json={"pending_users": [
            {"id": 21, "firstName": "Ewa", "lastName": "Lis", "email": "ewa@medapp.pl", "role": "doctor"},
        ]})

        users = await resources.get_pending_users(api)

    assert users[0].first_name == "Ewa"
    assert users[0].is_active is False


@pytest.mark.asyncio
async def test_register_doctor(api):
    with respx.mock(base_url=BASE) as m:
        route = m.post("/user/register/doctor").respond(201, json={"status": "success"})

        await resources.register_doctor(
            api, "Ewa", "Lis", "ewa@medapp.pl", "secret12", "Neurologia", "PWZ-1111111"
        )

    body = json.loads(route.calls.last.request.content)
    assert body["specialization"] == "Neurologia"
    assert body["license_number"] == "PWZ-1111111"


@pytest.mark.asyncio
async def test_notifications(api):
    with respx.mock(base_url=BASE) as m:
        m.get("/notification/15").respond(200, json={"notifications": [{"id": 1, "message": "Wizyta jutro"}]})
        read = m.post("/notification/1/read").respond(200, json={"status": "success"})

        notes = await resources.get_notifications(api, 15)
        await resources.mark_notification_read(api, notes[0].id)

    assert notes[0].message == "Wizyta jutro"
    assert read.called


@pytest.mark.asyncio
async def test_prescriptions(api):
    with respx.mock(base_url=BASE) as m:
        create = m.post("/prescription/create").respond(201, json={"status": "success"})
        m.get("/prescription/patient/3").respond(200, json={"prescriptions": [
            {"id": 4, "patient_id": 3, "items": [{"medication_name": "Ibuprofen", "dosage": "200mg"}]},
        ]})

        await resources.create_prescription(
            api, 3, 5, 1001, [PrescriptionItem(medication_name="Ibuprofen", dosage="200mg")]
        )
        prescriptions = await resources.get_patient_prescriptions(api, 3)

    assert json.loads(create.calls.last.request.content)["prescription_items"][0]["medication_name"] == "Ibuprofen"
    assert prescriptions[0].prescription_items[0].dosage == "200mg"
