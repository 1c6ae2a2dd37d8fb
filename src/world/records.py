"""就诊预约与健康日记

两者都只是按 id 管理的记录列表, 修改后立即整体持久化, 不参与服药调度。
预约提醒只在启动和新增预约时检查一次, 没有独立的定时器。
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Generic, Protocol, TypeVar

from datamodel import *
from logger import logger
from utils import Clock, sanitize_input

__all__ = [
    "AppointmentBook", "HealthJournal", "MOODS",
    "RecordNotFoundError", "RecordValidationError",
]

MOODS = ("great", "good", "okay", "bad", "terrible")

R = TypeVar("R", Appointment, JournalEntry)


class RecordNotFoundError(KeyError):
    pass


class RecordValidationError(ValueError):
    pass


class RecordPersistence(Protocol[R]):
    async def save(self, records: list[R]) -> None: ...

    async def load(self) -> list[R]: ...


class _RecordBook(Generic[R]):
    label = "记录"

    def __init__(self, persistence: RecordPersistence[R], clock: Clock) -> None:
        self._persistence = persistence
        self._clock = clock
        self.records: list[R] = []

    async def load(self) -> None:
        self.records = await self._persistence.load()
        logger.info(f"{self.label}已加载: {len(self.records)} 条")

    async def save(self) -> None:
        await self._persistence.save(self.records)

    def get(self, record_id: int) -> R | None:
        for record in self.records:
            if record.id == record_id:
                return record
        return None

    def _new_id(self) -> int:
        candidate = int(self._clock.now().timestamp() * 1000)
        existing = {r.id for r in self.records}
        while candidate in existing:
            candidate += 1
        return candidate

    async def _append(self, record: R) -> R:
        self.records.append(record)
        await self.save()
        logger.info(f"添加{self.label}: id={record.id}")
        return record

    async def delete(self, record_id: int) -> R:
        record = self.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        self.records = [r for r in self.records if r.id != record_id]
        await self.save()
        logger.info(f"删除{self.label}: id={record_id}")
        return record


class AppointmentBook(_RecordBook[Appointment]):
    label = "就诊预约"

    def _local(self, value: str) -> datetime:
        """预约时间没有时区时按用户时区理解"""
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=self._clock.now().tzinfo)
        return parsed

    def sorted_by_date(self) -> list[Appointment]:
        return sorted(self.records, key=lambda a: self._local(a.date_time))

    async def add(
        self,
        doctor: str,
        date_time: str,
        type: str = "",
        location: str = "",
        notes: str = "",
    ) -> Appointment:
        doctor = sanitize_input(doctor)
        if not doctor:
            raise RecordValidationError("Doctor is required")
        date_time = (date_time or "").strip()
        try:
            self._local(date_time)
        except ValueError:
            raise RecordValidationError("Valid date and time are required")

        return await self._append(Appointment(
            id=self._new_id(),
            doctor=doctor,
            date_time=date_time,
            type=sanitize_input(type),
            location=sanitize_input(location),
            notes=sanitize_input(notes),
            created_at=self._clock.now().isoformat(),
        ))

    def due_within(self, hours: float = 24) -> list[tuple[Appointment, float]]:
        """接下来 hours 小时内的预约及剩余小时数, 已过去的不算"""
        now = self._clock.now()
        upcoming: list[tuple[Appointment, float]] = []
        for appointment in self.sorted_by_date():
            hours_until = (self._local(appointment.date_time) - now).total_seconds() / 3600
            if 0 < hours_until < hours:
                upcoming.append((appointment, hours_until))
        return upcoming


class HealthJournal(_RecordBook[JournalEntry]):
    label = "健康日记"

    def newest_first(self) -> list[JournalEntry]:
        return sorted(self.records, key=lambda e: e.date, reverse=True)

    async def add(self, entry_date: str, mood: str, symptoms: str = "", notes: str = "") -> JournalEntry:
        entry_date = (entry_date or "").strip()
        try:
            date.fromisoformat(entry_date)
        except ValueError:
            raise RecordValidationError("Valid date is required (YYYY-MM-DD)")
        if mood not in MOODS:
            raise RecordValidationError(f"Mood must be one of: {', '.join(MOODS)}")

        return await self._append(JournalEntry(
            id=self._new_id(),
            date=entry_date,
            mood=mood,
            symptoms=sanitize_input(symptoms),
            notes=sanitize_input(notes),
            created_at=self._clock.now().isoformat(),
        ))
