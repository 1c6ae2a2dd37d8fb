"""服药助手核心模块

MedicationAssistant 对应旧版页面上的全部用户操作(服药清单、就诊预约、健康日记、药盒按键),
负责把各个记录簿、提醒调度器与通知渠道串起来, 并在事件总线上广播领域事件。

# 一次确认的处理流程
1. 服药清单标记已服用并更新依从性计数, 立即持久化
2. 通知调度器取消该药的唤醒与升级定时器
3. 发出确认提示与语音, 广播 MEDICATION_CONFIRMED (设备同步在事件处理器中完成)

状态持久化之后的通知失败只记录日志, 不会让操作本身失败。
"""

from __future__ import annotations

import csv
import io
from datetime import date
from typing import Any

from channels.base import NotificationSink
from datamodel import *
from events import bus, E
from logger import logger
from metrics import runtime_metrics
from utils import Clock
from world.medications import MedicationStore
from world.records import AppointmentBook, HealthJournal
from world.reminder import ReminderScheduler

__all__ = ["MedicationAssistant", "CONFIRM_BUTTON"]

CONFIRM_BUTTON = 1  # 药盒上的确认键


class MedicationAssistant:
    def __init__(
        self,
        store: MedicationStore,
        scheduler: ReminderScheduler,
        notifier: NotificationSink,
        clock: Clock,
        patient_name: str = "",
        *,
        appointments: AppointmentBook,
        journal: HealthJournal,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.notifier = notifier
        self.appointments = appointments
        self.journal = journal
        self._clock = clock
        self.patient_name = patient_name

    async def start(self) -> None:
        await self.store.load()
        await self.appointments.load()
        await self.journal.load()
        await self.scheduler.check_daily_reset()
        self.check_refill_alerts()
        self.check_appointment_reminders()
        logger.info("服药助手已启动")

    def _notify(self, message: str, severity: Severity, speech: str | None = None) -> None:
        try:
            self.notifier.emit_alert(message, severity)
            if speech:
                self.notifier.speak(speech)
        except Exception as e:
            logger.exception(f"提示发送失败: {message}, error={e}")

    # ----------------- 服药 ----------------
    async def add_medication(self, **fields: Any) -> Medication:
        med = await self.store.add(**fields)
        bus.emit(E.MEDICATION_ADDED, medication=med)
        self._notify("Medication added successfully!", Severity.SUCCESS)
        await self.scheduler.reschedule_all()
        self.check_refill_alerts()
        return med

    async def update_medication(self, medication_id: int, **fields: Any) -> Medication:
        med = await self.store.update(medication_id, **fields)
        bus.emit(E.MEDICATION_UPDATED, medication=med)
        self._notify("Medication updated successfully!", Severity.SUCCESS)
        await self.scheduler.reschedule_all()
        self.check_refill_alerts()
        return med

    async def delete_medication(self, medication_id: int) -> Medication:
        med = await self.store.delete(medication_id)
        self.scheduler.on_confirmed(medication_id)
        bus.emit(E.MEDICATION_DELETED, medication=med)
        self._notify("Medication deleted", Severity.SUCCESS)
        await self.scheduler.reschedule_all()
        return med

    async def confirm_medication(self, medication_id: int) -> Medication:
        med, changed = await self.store.confirm(medication_id)
        self.scheduler.on_confirmed(medication_id)
        if not changed:
            return med

        runtime_metrics.record_confirmation()
        bus.emit(E.MEDICATION_CONFIRMED, medication=med)
        self._notify(f"{med.name} marked as taken!", Severity.SUCCESS, speech=f"Great! {med.name} confirmed.")
        return med

    async def handle_device_button(self, button_id: int) -> Medication | None:
        """药盒按键: 确认键确认下一个未服用的药, 其余按键忽略"""
        bus.emit(E.DEVICE_BUTTON_PRESSED, button=button_id)
        if button_id != CONFIRM_BUTTON:
            logger.debug(f"忽略未定义的药盒按键: {button_id}")
            return None

        pending = self.store.pending_today()
        if not pending:
            logger.info("收到药盒确认键, 但今天没有待服用的药")
            return None
        return await self.confirm_medication(pending[0].id)

    def check_refill_alerts(self) -> list[Medication]:
        low = self.store.low_stock()
        for med in low:
            self._notify(f"Low stock: {med.name} ({med.stock} pills left)", Severity.WARNING)
            bus.emit(E.MEDICATION_LOW_STOCK, medication=med)
        return low

    # ----------------- 就诊预约 ----------------
    async def add_appointment(self, **fields: Any) -> Appointment:
        appointment = await self.appointments.add(**fields)
        bus.emit(E.APPOINTMENT_ADDED, appointment=appointment)
        self._notify("Appointment added!", Severity.SUCCESS)
        self.check_appointment_reminders()
        return appointment

    async def delete_appointment(self, appointment_id: int) -> Appointment:
        appointment = await self.appointments.delete(appointment_id)
        bus.emit(E.APPOINTMENT_DELETED, appointment=appointment)
        self._notify("Appointment deleted", Severity.INFO)
        return appointment

    def check_appointment_reminders(self) -> list[Appointment]:
        """24 小时内的预约各提醒一次"""
        upcoming = self.appointments.due_within(hours=24)
        for appointment, hours_until in upcoming:
            self._notify(
                f"Reminder: Appointment with {appointment.doctor} in {int(hours_until + 0.5)} hours",
                Severity.INFO,
            )
            bus.emit(E.APPOINTMENT_UPCOMING, appointment=appointment)
        return [appointment for appointment, _ in upcoming]

    # ----------------- 健康日记 ----------------
    async def add_journal_entry(self, **fields: Any) -> JournalEntry:
        entry = await self.journal.add(**fields)
        bus.emit(E.JOURNAL_ADDED, entry=entry)
        self._notify("Journal entry saved!", Severity.SUCCESS)
        return entry

    async def delete_journal_entry(self, entry_id: int) -> JournalEntry:
        entry = await self.journal.delete(entry_id)
        bus.emit(E.JOURNAL_DELETED, entry=entry)
        self._notify("Journal entry deleted", Severity.INFO)
        return entry

    # ----------------- 展示 ----------------
    def dashboard(self) -> dict[str, Any]:
        pending = self.store.pending_today()
        next_med = pending[0] if pending else None
        return {
            "patient_name": self.patient_name,
            "adherence_percent": self.store.adherence_percent(),
            "streak": self.store.counters.streak,
            "counters": self.store.counters.to_dict(),
            "pending": [m.to_dict() for m in pending],
            "next": (
                {"time": next_med.time, "name": next_med.name}
                if next_med is not None
                else {"time": "--:--", "name": "All done!"}
            ),
            "recent_activity": [m.to_dict() for m in self.store.recent_activity()],
            "low_stock": [m.to_dict() for m in self.store.low_stock()],
        }

    def history(self, status: str = "all", on_date: date | None = None) -> list[Medication]:
        return self.store.history(status, on_date)

    def export_schedule_csv(self) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        for med in self.store.medications:
            writer.writerow([med.time, med.name, med.dosage])
        return buf.getvalue()

    def export_history_csv(self) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(["Medication", "Dosage", "Time Scheduled", "Time Taken", "Status"])
        for med in self.store.history():
            writer.writerow([med.name, med.dosage, med.time, med.taken_at, "Taken" if med.taken else "Missed"])
        return buf.getvalue()
