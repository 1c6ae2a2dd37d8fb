"""Test fixtures for the medication reminder assistant."""
from __future__ import annotations

import heapq
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

import storage.db_config as db_config
from channels.base import NotificationSink
from core.assistant import MedicationAssistant
from datamodel import AdherenceCounters, Medication, Severity
from events import bus
from metrics import runtime_metrics
from utils import Clock
from world.medications import MedicationStore
from world.records import AppointmentBook, HealthJournal
from world.reminder import ReminderScheduler
from world.timers import TimerSource

TZ = ZoneInfo("UTC")


def at(hour: int, minute: int, second: int = 0, day: int = 16) -> datetime:
    return datetime(2026, 10, day, hour, minute, second, tzinfo=TZ)


class ManualClock(Clock):
    def __init__(self, start: datetime) -> None:
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value


class ManualTimerHandle:
    def __init__(self, due: datetime, delay_s: float, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.delay_s = delay_s
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimerSource(TimerSource):
    """Timers that only elapse when the test advances the clock."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self._queue: list[tuple[datetime, int, ManualTimerHandle]] = []
        self._seq = 0

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> ManualTimerHandle:
        handle = ManualTimerHandle(self.clock.now() + timedelta(seconds=delay_s), delay_s, self._seq, callback)
        self._seq += 1
        heapq.heappush(self._queue, (handle.due, handle.seq, handle))
        return handle

    def pending(self) -> list[ManualTimerHandle]:
        return sorted((h for _, _, h in self._queue if not h.cancelled), key=lambda h: (h.due, h.seq))

    def advance(self, **delta: float) -> None:
        target = self.clock.now() + timedelta(**delta)
        while self._queue:
            due, _, handle = self._queue[0]
            if handle.cancelled:
                heapq.heappop(self._queue)
                continue
            if due > target:
                break
            heapq.heappop(self._queue)
            self.clock.set(max(due, self.clock.now()))
            handle.callback()
        self.clock.set(target)


class RecordingSink(NotificationSink):
    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self.alerts: list[tuple[str, Severity, datetime]] = []
        self.speeches: list[str] = []
        self.tones = 0

    def emit_alert(self, message: str, severity: Severity = Severity.INFO) -> None:
        self.alerts.append((message, Severity(severity), self.clock.now()))

    def speak(self, text: str) -> None:
        self.speeches.append(text)

    def play_tone(self) -> None:
        self.tones += 1

    def reminders(self) -> list[tuple[str, Severity, datetime]]:
        return [a for a in self.alerts if a[1] == Severity.WARNING and a[0].startswith("Time to take")]


class InMemoryPersistence:
    def __init__(self) -> None:
        self.medications: list[Medication] = []
        self.counters: AdherenceCounters | None = None
        self.save_count = 0

    async def save(self, medications: list[Medication], counters: AdherenceCounters) -> None:
        self.medications = [replace(m) for m in medications]
        self.counters = replace(counters)
        self.save_count += 1

    async def load(self) -> tuple[list[Medication], AdherenceCounters]:
        counters = replace(self.counters) if self.counters is not None else AdherenceCounters()
        return [replace(m) for m in self.medications], counters


class InMemoryRecordPersistence:
    def __init__(self) -> None:
        self.records: list = []
        self.save_count = 0

    async def save(self, records: list) -> None:
        self.records = [replace(r) for r in records]
        self.save_count += 1

    async def load(self) -> list:
        return [replace(r) for r in self.records]


@pytest.fixture(autouse=True)
def reset_globals():
    runtime_metrics.reset()
    bus.remove_all_listeners()
    yield
    bus.remove_all_listeners()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(at(7, 0))


@pytest.fixture()
def timers(clock: ManualClock) -> ManualTimerSource:
    return ManualTimerSource(clock)


@pytest.fixture()
def sink(clock: ManualClock) -> RecordingSink:
    return RecordingSink(clock)


@pytest.fixture()
def persistence() -> InMemoryPersistence:
    return InMemoryPersistence()


@pytest.fixture()
def store(persistence: InMemoryPersistence, clock: ManualClock) -> MedicationStore:
    return MedicationStore(persistence, clock)


@pytest.fixture()
def scheduler(store, sink, clock, timers) -> ReminderScheduler:
    return ReminderScheduler(store, sink, clock, timers)


@pytest.fixture()
def appointments(clock: ManualClock) -> AppointmentBook:
    return AppointmentBook(InMemoryRecordPersistence(), clock)


@pytest.fixture()
def journal(clock: ManualClock) -> HealthJournal:
    return HealthJournal(InMemoryRecordPersistence(), clock)


@pytest.fixture()
def assistant(store, scheduler, sink, clock, appointments, journal) -> MedicationAssistant:
    return MedicationAssistant(
        store, scheduler, sink, clock,
        patient_name="Alex",
        appointments=appointments,
        journal=journal,
    )


@pytest_asyncio.fixture()
async def sqlite_db(tmp_path):
    """Initialise a throwaway SQLite database for persistence tests."""
    await db_config.init_db(str(tmp_path / "data" / "test.db"))
    yield
    await db_config.close_db()
