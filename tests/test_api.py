"""HTTP API tests against the ASGI app."""
from __future__ import annotations

import asyncio
import time

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from admin.app import create_app
from admin.schemas import RuntimeControl
from channels.console import LogNotificationSink
from core.assistant import MedicationAssistant
from world.reminder import ReminderScheduler


@pytest_asyncio.fixture()
async def api_context(store, clock, timers, appointments, journal):
    notifier = LogNotificationSink(clock)
    scheduler = ReminderScheduler(store, notifier, clock, timers)
    assistant = MedicationAssistant(store, scheduler, notifier, clock, appointments=appointments, journal=journal)
    control = RuntimeControl(shutdown_event=asyncio.Event(), started_at=time.time())
    app = create_app(control, assistant)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield {"client": client, "assistant": assistant, "control": control, "timers": timers}


@pytest.mark.asyncio
async def test_health(api_context) -> None:
    client = api_context["client"]

    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"

    response = await client.get("/healthz")
    assert response.text == "ok"


@pytest.mark.asyncio
async def test_create_and_list_medications(api_context) -> None:
    client = api_context["client"]

    created = await client.post(
        "/api/v1/medications",
        json={"name": "Statin", "dosage": "20mg", "time": "21:00"},
    )
    await client.post(
        "/api/v1/medications",
        json={"name": "Aspirin", "dosage": "100mg", "time": "08:00", "frequency": "Daily"},
    )

    assert created.status_code == 201
    assert created.json()["taken"] is False
    listing = (await client.get("/api/v1/medications")).json()
    assert listing["total"] == 2
    assert [m["name"] for m in listing["items"]] == ["Aspirin", "Statin"]


@pytest.mark.asyncio
async def test_create_rejects_malformed_time(api_context) -> None:
    response = await api_context["client"].post(
        "/api/v1/medications",
        json={"name": "Aspirin", "dosage": "100mg", "time": "8 am"},
    )

    assert response.status_code == 422
    assert api_context["assistant"].store.medications == []


@pytest.mark.asyncio
async def test_create_rejects_blank_name_after_sanitising(api_context) -> None:
    response = await api_context["client"].post(
        "/api/v1/medications",
        json={"name": "<>", "dosage": "100mg", "time": "08:00"},
    )

    assert response.status_code == 422
    assert response.json()["detail"] == "Medication name is required"


@pytest.mark.asyncio
async def test_update_and_delete(api_context) -> None:
    client = api_context["client"]
    med_id = (await client.post(
        "/api/v1/medications",
        json={"name": "Aspirin", "dosage": "100mg", "time": "08:00"},
    )).json()["id"]

    updated = await client.put(f"/api/v1/medications/{med_id}", json={"time": "09:15"})
    assert updated.status_code == 200
    assert updated.json()["time"] == "09:15"

    deleted = await client.delete(f"/api/v1/medications/{med_id}")
    assert deleted.json() == {"ok": True, "id": med_id}
    assert (await client.delete(f"/api/v1/medications/{med_id}")).status_code == 404


@pytest.mark.asyncio
async def test_confirm_returns_counters(api_context) -> None:
    client = api_context["client"]
    med_id = (await client.post(
        "/api/v1/medications",
        json={"name": "Aspirin", "dosage": "100mg", "time": "08:00"},
    )).json()["id"]

    response = await client.post(f"/api/v1/medications/{med_id}/confirm")

    assert response.status_code == 200
    body = response.json()
    assert body["medication"]["taken"] is True
    assert body["counters"]["taken"] == 1
    assert (await client.post("/api/v1/medications/42/confirm")).status_code == 404


@pytest.mark.asyncio
async def test_reminders_and_alerts_reflect_schedule(api_context) -> None:
    client = api_context["client"]
    med_id = (await client.post(
        "/api/v1/medications",
        json={"name": "Aspirin", "dosage": "100mg", "time": "08:00"},
    )).json()["id"]

    reminders = (await client.get("/api/v1/reminders")).json()
    assert reminders["items"][0]["medication_id"] == med_id
    assert reminders["items"][0]["state"] == "armed"

    api_context["timers"].advance(minutes=60)
    alerts = (await client.get("/api/v1/alerts", params={"limit": 1})).json()
    assert alerts["items"][0]["text"] == "Time to take Aspirin (100mg)"
    assert alerts["items"][0]["severity"] == "warning"

    everything = (await client.get("/api/v1/alerts")).json()["items"]
    assert [a["text"] for a in everything] == [
        "Time to take Aspirin (100mg)",
        "Reminder: Aspirin in 15 minutes",
        "Medication added successfully!",
    ]
    assert all(a["severity"] is not None for a in everything)


@pytest.mark.asyncio
async def test_dashboard_and_metrics(api_context) -> None:
    client = api_context["client"]
    await client.post("/api/v1/medications", json={"name": "Aspirin", "dosage": "100mg", "time": "08:00"})

    dashboard = (await client.get("/api/v1/dashboard")).json()
    assert dashboard["next"] == {"time": "08:00", "name": "Aspirin"}

    metrics = (await client.get("/api/v1/metrics")).json()
    assert metrics["runtime"]["wake_up_armed_count"] == 1
    assert metrics["components"]["db"]["connected"] is False


@pytest.mark.asyncio
async def test_csv_exports(api_context) -> None:
    client = api_context["client"]
    await client.post("/api/v1/medications", json={"name": "Aspirin", "dosage": "100mg", "time": "08:00"})

    schedule = await client.get("/api/v1/export/schedule.csv")
    assert schedule.headers["content-type"].startswith("text/csv")
    assert schedule.text == "08:00,Aspirin,100mg\n"

    history = await client.get("/api/v1/export/history.csv")
    assert history.text.splitlines() == ["Medication,Dosage,Time Scheduled,Time Taken,Status"]


@pytest.mark.asyncio
async def test_shutdown_sets_event(api_context) -> None:
    response = await api_context["client"].post("/api/v1/admin/shutdown", json={"reason": "test"})

    assert response.json()["action"] == "shutdown"
    assert api_context["control"].shutdown_event.is_set()


@pytest.mark.asyncio
async def test_schedule_export_quotes_commas(api_context) -> None:
    client = api_context["client"]
    await client.post("/api/v1/medications", json={"name": "Vitamin B, complex", "dosage": "1 tab", "time": "09:00"})

    schedule = await client.get("/api/v1/export/schedule.csv")

    assert schedule.text == '09:00,"Vitamin B, complex",1 tab\n'


@pytest.mark.asyncio
async def test_history_filters(api_context) -> None:
    client = api_context["client"]
    med_id = (await client.post(
        "/api/v1/medications",
        json={"name": "Aspirin", "dosage": "100mg", "time": "08:00"},
    )).json()["id"]
    await client.post(f"/api/v1/medications/{med_id}/confirm")

    taken = (await client.get("/api/v1/history", params={"status": "taken", "date": "2026-10-16"})).json()
    assert [m["name"] for m in taken["items"]] == ["Aspirin"]

    other_day = (await client.get("/api/v1/history", params={"date": "2026-10-15"})).json()
    assert other_day["total"] == 0

    assert (await client.get("/api/v1/history", params={"status": "later"})).status_code == 422


@pytest.mark.asyncio
async def test_appointments_endpoints(api_context) -> None:
    client = api_context["client"]

    created = await client.post(
        "/api/v1/appointments",
        json={"doctor": "Dr. Chen", "date_time": "2026-10-16T15:00", "type": "checkup"},
    )
    assert created.status_code == 201
    appointment_id = created.json()["id"]
    assert created.json()["dateTime"] == "2026-10-16T15:00"

    listing = (await client.get("/api/v1/appointments")).json()
    assert listing["total"] == 1

    alerts = (await client.get("/api/v1/alerts")).json()["items"]
    assert alerts[0]["text"] == "Reminder: Appointment with Dr. Chen in 8 hours"

    bad = await client.post("/api/v1/appointments", json={"doctor": "Dr. Chen", "date_time": "tomorrow"})
    assert bad.status_code == 422

    assert (await client.delete(f"/api/v1/appointments/{appointment_id}")).json() == {"ok": True, "id": appointment_id}
    assert (await client.delete(f"/api/v1/appointments/{appointment_id}")).status_code == 404


@pytest.mark.asyncio
async def test_journal_endpoints(api_context) -> None:
    client = api_context["client"]

    await client.post("/api/v1/journal", json={"date": "2026-10-14", "mood": "okay"})
    created = await client.post(
        "/api/v1/journal",
        json={"date": "2026-10-16", "mood": "good", "symptoms": "mild headache"},
    )
    assert created.status_code == 201

    listing = (await client.get("/api/v1/journal")).json()
    assert [e["date"] for e in listing["items"]] == ["2026-10-16", "2026-10-14"]

    bad = await client.post("/api/v1/journal", json={"date": "2026-10-16", "mood": "ecstatic"})
    assert bad.status_code == 422

    entry_id = created.json()["id"]
    assert (await client.delete(f"/api/v1/journal/{entry_id}")).status_code == 200
    assert (await client.get("/api/v1/journal")).json()["total"] == 1


@pytest.mark.asyncio
async def test_device_button_confirms_next_pending(api_context) -> None:
    client = api_context["client"]
    await client.post("/api/v1/medications", json={"name": "Statin", "dosage": "20mg", "time": "21:00"})
    await client.post("/api/v1/medications", json={"name": "Aspirin", "dosage": "100mg", "time": "08:00"})

    response = (await client.post("/api/v1/device/button", json={"button": 1})).json()

    assert response["confirmed"]["name"] == "Aspirin"
    assert response["confirmed"]["taken"] is True
    ignored = (await client.post("/api/v1/device/button", json={"button": 2})).json()
    assert ignored["confirmed"] is None
