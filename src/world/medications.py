"""服药清单

MedicationStore 持有全部 Medication 记录与依从性计数, 所有修改都会立即持久化。
它不包含任何调度逻辑, 调度器只通过 id 读取记录。
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Protocol

from datamodel import *
from logger import logger
from utils import Clock, is_valid_time_of_day, minutes_since_midnight, sanitize_input

__all__ = [
    "MedicationStore", "Persistence",
    "MedicationNotFoundError", "MedicationValidationError", "HISTORY_FILTERS",
]

_EDITABLE_FIELDS = ("name", "dosage", "time", "frequency", "stock", "refill_alert")
HISTORY_FILTERS = ("all", "taken", "missed")


class MedicationNotFoundError(KeyError):
    pass


class MedicationValidationError(ValueError):
    pass


class Persistence(Protocol):
    async def save(self, medications: list[Medication], counters: AdherenceCounters) -> None: ...

    async def load(self) -> tuple[list[Medication], AdherenceCounters]: ...


def _validate(med: Medication) -> None:
    if not med.name:
        raise MedicationValidationError("Medication name is required")
    if not med.dosage:
        raise MedicationValidationError("Dosage is required")
    if not is_valid_time_of_day(med.time):
        raise MedicationValidationError("Valid time is required (HH:MM)")
    if med.stock < 0 or med.refill_alert < 0:
        raise MedicationValidationError("Stock and refill alert must not be negative")


class MedicationStore:
    def __init__(self, persistence: Persistence, clock: Clock) -> None:
        self._persistence = persistence
        self._clock = clock
        self.medications: list[Medication] = []
        self.counters = AdherenceCounters(last_reset=clock.now().date().isoformat())

    async def load(self) -> None:
        medications, counters = await self._persistence.load()
        self.medications = medications
        if counters.last_reset is None:
            counters.last_reset = self._clock.now().date().isoformat()
        self.counters = counters
        logger.info(f"服药清单已加载: {len(self.medications)} 条")

    async def save(self) -> None:
        await self._persistence.save(self.medications, self.counters)

    # ----------------- 查询 ----------------
    def get(self, medication_id: int) -> Medication | None:
        for med in self.medications:
            if med.id == medication_id:
                return med
        return None

    def require(self, medication_id: int) -> Medication:
        med = self.get(medication_id)
        if med is None:
            raise MedicationNotFoundError(medication_id)
        return med

    def sorted_by_time(self) -> list[Medication]:
        return sorted(self.medications, key=lambda m: m.time)

    def pending_today(self) -> list[Medication]:
        return sorted((m for m in self.medications if not m.taken), key=lambda m: m.time)

    def recent_activity(self, limit: int = 5) -> list[Medication]:
        taken = [m for m in self.medications if m.taken]
        return list(reversed(taken[-limit:]))

    def history(self, status: str = "all", on_date: date | None = None) -> list[Medication]:
        """
        有服用记录的药, 最近服用的在前。

        status:
        - "taken": 今天已服用
        - "missed": 今天还没服用且今天的服药时间已过
        on_date 按最近一次服用的日期过滤
        """
        if status not in HISTORY_FILTERS:
            raise MedicationValidationError(f"Unknown history filter: {status}")

        history = [m for m in self.medications if m.taken_at]
        if status == "taken":
            history = [m for m in history if m.taken]
        elif status == "missed":
            now_minutes = minutes_since_midnight(self._clock.now())
            history = [
                m for m in history
                if not m.taken and is_valid_time_of_day(m.time) and m.time_minutes < now_minutes
            ]
        if on_date is not None:
            history = [m for m in history if datetime.fromisoformat(m.taken_at).date() == on_date]
        return sorted(history, key=lambda m: m.taken_at, reverse=True)

    def low_stock(self) -> list[Medication]:
        return [m for m in self.medications if m.is_low_stock]

    def adherence_percent(self) -> int:
        if self.counters.total <= 0:
            return 0
        return round(self.counters.taken / self.counters.total * 100)

    # ----------------- 修改 ----------------
    def _new_id(self) -> int:
        candidate = int(self._clock.now().timestamp() * 1000)
        existing = {m.id for m in self.medications}
        while candidate in existing:
            candidate += 1
        return candidate

    async def add(
        self,
        name: str,
        dosage: str,
        time: str,
        frequency: str = "",
        stock: int = 0,
        refill_alert: int = 0,
    ) -> Medication:
        med = Medication(
            id=self._new_id(),
            name=sanitize_input(name),
            dosage=sanitize_input(dosage),
            time=(time or "").strip(),
            frequency=sanitize_input(frequency),
            stock=int(stock or 0),
            refill_alert=int(refill_alert or 0),
            created_at=self._clock.now().isoformat(),
        )
        _validate(med)
        self.medications.append(med)
        await self.save()
        logger.info(f"添加服药记录: id={med.id}, name={med.name}, time={med.time}")
        return med

    async def update(self, medication_id: int, **fields) -> Medication:
        med = self.require(medication_id)
        unknown = set(fields) - set(_EDITABLE_FIELDS)
        if unknown:
            raise MedicationValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        candidate = replace(med)
        for key, value in fields.items():
            if value is None:
                continue
            if key in ("name", "dosage", "frequency"):
                value = sanitize_input(value)
            elif key == "time":
                value = str(value).strip()
            else:
                value = int(value)
            setattr(candidate, key, value)
        _validate(candidate)

        for key in _EDITABLE_FIELDS:
            setattr(med, key, getattr(candidate, key))
        med.updated_at = self._clock.now().isoformat()
        await self.save()
        logger.info(f"更新服药记录: id={med.id}, fields={sorted(fields)}")
        return med

    async def delete(self, medication_id: int) -> Medication:
        med = self.require(medication_id)
        self.medications = [m for m in self.medications if m.id != medication_id]
        await self.save()
        logger.info(f"删除服药记录: id={medication_id}")
        return med

    async def confirm(self, medication_id: int) -> tuple[Medication, bool]:
        """标记为已服用, 返回 (记录, 本次是否产生了变化)"""
        med = self.require(medication_id)
        if med.taken:
            logger.debug(f"重复确认, 已忽略: id={medication_id}")
            return med, False

        med.taken = True
        med.taken_at = self._clock.now().isoformat()
        self.counters.taken += 1
        self.counters.total += 1
        self.counters.streak += 1
        await self.save()
        logger.info(f"已确认服药: id={med.id}, name={med.name}")
        return med, True

    async def check_daily_reset(self, today: date) -> bool:
        """跨天后清除所有药的今日已服用标记, 依从性计数保持不变"""
        today_str = today.isoformat()
        if self.counters.last_reset == today_str:
            return False

        for med in self.medications:
            med.taken = False
        previous = self.counters.last_reset
        self.counters.last_reset = today_str
        await self.save()
        logger.info(f"每日重置完成: {previous} -> {today_str}")
        return True
