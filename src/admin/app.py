from __future__ import annotations

import asyncio
import time
from datetime import date
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse, RedirectResponse

from channels.console import LogNotificationSink
from core.assistant import MedicationAssistant
from logger import logger
from metrics import runtime_metrics
from world.medications import MedicationNotFoundError, MedicationValidationError
from world.records import RecordNotFoundError, RecordValidationError

import storage.db_config as db_config
from .schemas import (
    AppointmentCreate, DeviceButtonPress, JournalEntryCreate,
    MedicationCreate, MedicationUpdate, RuntimeControl, ShutdownRequest,
)


def create_app(control: RuntimeControl, assistant: MedicationAssistant) -> FastAPI:
    app = FastAPI(title="MediCare Assistant API", version="1.0.0")

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "db_connected": db_config.conn is not None,
            "shutdown_requested": control.shutdown_event.is_set(),
        }

    async def run_action(coro):
        try:
            return await coro
        except MedicationNotFoundError as e:
            raise HTTPException(status_code=404, detail=f"Medication not found: {e.args[0]}")
        except MedicationValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except RecordNotFoundError as e:
            raise HTTPException(status_code=404, detail=f"Record not found: {e.args[0]}")
        except RecordValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))

    @app.get("/", include_in_schema=False)
    async def home() -> RedirectResponse:
        return RedirectResponse(url="/api/v1/dashboard")

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return health_payload()

    @app.get("/api/v1/dashboard")
    async def get_dashboard() -> dict[str, Any]:
        return assistant.dashboard()

    @app.get("/api/v1/medications")
    async def list_medications() -> dict[str, Any]:
        items = [m.to_dict() for m in assistant.store.sorted_by_time()]
        return {"items": items, "total": len(items)}

    @app.post("/api/v1/medications", status_code=201)
    async def create_medication(payload: MedicationCreate) -> dict[str, Any]:
        med = await run_action(assistant.add_medication(**payload.model_dump()))
        return med.to_dict()

    @app.put("/api/v1/medications/{medication_id}")
    async def update_medication(medication_id: int, payload: MedicationUpdate) -> dict[str, Any]:
        fields = payload.model_dump(exclude_none=True)
        med = await run_action(assistant.update_medication(medication_id, **fields))
        return med.to_dict()

    @app.delete("/api/v1/medications/{medication_id}")
    async def delete_medication(medication_id: int) -> dict[str, Any]:
        med = await run_action(assistant.delete_medication(medication_id))
        return {"ok": True, "id": med.id}

    @app.post("/api/v1/medications/{medication_id}/confirm")
    async def confirm_medication(medication_id: int) -> dict[str, Any]:
        med = await run_action(assistant.confirm_medication(medication_id))
        return {
            "medication": med.to_dict(),
            "counters": assistant.store.counters.to_dict(),
        }

    @app.get("/api/v1/history")
    async def get_history(
        status: str = "all",
        on_date: Optional[date] = Query(default=None, alias="date"),
    ) -> dict[str, Any]:
        try:
            items = [m.to_dict() for m in assistant.history(status, on_date)]
        except MedicationValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return {"items": items, "total": len(items)}

    @app.post("/api/v1/device/button")
    async def press_device_button(payload: DeviceButtonPress) -> dict[str, Any]:
        med = await assistant.handle_device_button(payload.button)
        return {"button": payload.button, "confirmed": med.to_dict() if med is not None else None}

    @app.get("/api/v1/appointments")
    async def list_appointments() -> dict[str, Any]:
        items = [a.to_dict() for a in assistant.appointments.sorted_by_date()]
        return {"items": items, "total": len(items)}

    @app.post("/api/v1/appointments", status_code=201)
    async def create_appointment(payload: AppointmentCreate) -> dict[str, Any]:
        appointment = await run_action(assistant.add_appointment(**payload.model_dump()))
        return appointment.to_dict()

    @app.delete("/api/v1/appointments/{appointment_id}")
    async def delete_appointment(appointment_id: int) -> dict[str, Any]:
        appointment = await run_action(assistant.delete_appointment(appointment_id))
        return {"ok": True, "id": appointment.id}

    @app.get("/api/v1/journal")
    async def list_journal() -> dict[str, Any]:
        items = [e.to_dict() for e in assistant.journal.newest_first()]
        return {"items": items, "total": len(items)}

    @app.post("/api/v1/journal", status_code=201)
    async def create_journal_entry(payload: JournalEntryCreate) -> dict[str, Any]:
        entry = await run_action(assistant.add_journal_entry(
            entry_date=payload.date,
            mood=payload.mood,
            symptoms=payload.symptoms,
            notes=payload.notes,
        ))
        return entry.to_dict()

    @app.delete("/api/v1/journal/{entry_id}")
    async def delete_journal_entry(entry_id: int) -> dict[str, Any]:
        entry = await run_action(assistant.delete_journal_entry(entry_id))
        return {"ok": True, "id": entry.id}

    @app.get("/api/v1/reminders")
    async def get_reminders() -> dict[str, Any]:
        return {
            "status": assistant.scheduler.get_status(),
            "items": [view.to_dict() for view in assistant.scheduler.snapshot()],
        }

    @app.get("/api/v1/alerts")
    async def get_alerts(limit: int = 50) -> dict[str, Any]:
        limit = max(1, min(limit, 500))
        notifier = assistant.notifier
        items = notifier.recent(limit) if isinstance(notifier, LogNotificationSink) else []
        return {"items": items, "limit": limit}

    @app.get("/api/v1/metrics")
    async def get_metrics() -> dict[str, Any]:
        return {
            "runtime": runtime_metrics.snapshot(),
            "components": {
                "db": {"connected": db_config.conn is not None},
                "reminder": assistant.scheduler.get_status(),
            },
            "active_tasks": len(asyncio.all_tasks()),
        }

    @app.get("/api/v1/export/schedule.csv")
    async def export_schedule() -> PlainTextResponse:
        return PlainTextResponse(
            assistant.export_schedule_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=medication_schedule.csv"},
        )

    @app.get("/api/v1/export/history.csv")
    async def export_history() -> PlainTextResponse:
        filename = f"medication-history-{time.strftime('%Y-%m-%d')}.csv"
        return PlainTextResponse(
            assistant.export_history_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    @app.post("/api/v1/admin/shutdown")
    async def admin_shutdown(payload: ShutdownRequest) -> dict[str, Any]:
        logger.warning(f"收到远程关闭请求: reason={payload.reason}")
        control.shutdown_event.set()
        return {"ok": True, "action": "shutdown", "reason": payload.reason}

    return app
