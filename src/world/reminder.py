"""服药提醒调度器

每个未服用的药对应一个提醒槽(slot), 槽内最多只有一个待触发的唤醒定时器。
调度器每隔固定周期(默认 60 秒)整体重算一次, 以此吸收编辑/删除/确认以及系统休眠带来的偏差。

唤醒触发后进入升级循环: armed -> escalating -> {confirmed, expired}
- escalating 期间每 5 分钟重复提醒一次, 重复 6 次(30 分钟)后进入 expired, 不再提醒
- 任意状态下收到确认都会立即进入 confirmed 并取消该药的全部定时器

注意: 已经过去的时间点不会补发提醒, 只会等到第二天
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from functools import partial

from channels.base import NotificationSink
from datamodel import *
from events import bus, E
from logger import logger
from metrics import runtime_metrics
from utils import Clock, is_valid_time_of_day, minutes_since_midnight
from world.medications import MedicationStore
from world.timers import TimerHandle, TimerSource

__all__ = ["ReminderScheduler"]


@dataclass
class _ReminderSlot:
    medication_id: int
    slot_date: str | None = None
    slot_minutes: int | None = None
    state: EscalationState = EscalationState.ARMED
    fired: bool = False
    repetitions: int = 0
    wake_up: TimerHandle | None = None
    pre_notice: TimerHandle | None = None
    escalation: TimerHandle | None = None

    def cancel_timers(self) -> None:
        for handle in (self.wake_up, self.pre_notice, self.escalation):
            if handle is not None:
                handle.cancel()
        self.wake_up = None
        self.pre_notice = None
        self.escalation = None

    def view(self) -> ReminderSlotView:
        slot_time = None
        if self.slot_minutes is not None:
            slot_time = f"{self.slot_minutes // 60:02d}:{self.slot_minutes % 60:02d}"
        return ReminderSlotView(
            medication_id=self.medication_id,
            state=self.state,
            repetitions=self.repetitions,
            wake_up_pending=self.wake_up is not None,
            pre_notice_pending=self.pre_notice is not None,
            escalation_pending=self.escalation is not None,
            slot_date=self.slot_date,
            slot_time=slot_time,
        )


class ReminderScheduler:
    def __init__(
        self,
        store: MedicationStore,
        notifier: NotificationSink,
        clock: Clock,
        timers: TimerSource,
        *,
        reschedule_interval_s: float = 60,
        pre_notice_minutes: int = 15,
        escalation_interval_minutes: int = 5,
        escalation_max_repetitions: int = 6,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._timers = timers
        self._reschedule_interval_s = reschedule_interval_s
        self._pre_notice_minutes = pre_notice_minutes
        self._escalation_interval_minutes = escalation_interval_minutes
        self._escalation_max_repetitions = escalation_max_repetitions

        self._slots: dict[int, _ReminderSlot] = {}
        self._running = False
        self._last_pass_at: datetime | None = None

    # ----------------- 周期重算 ----------------
    async def reschedule_all(self, now: datetime | None = None) -> None:
        now = now or self._clock.now()
        today = now.date()
        await self.check_daily_reset(now)

        now_minutes = minutes_since_midnight(now)
        known_ids: set[int] = set()
        for med in list(self._store.medications):
            known_ids.add(med.id)
            if med.taken:
                continue
            if not is_valid_time_of_day(med.time):
                logger.warning(f"服药时间非法, 不参与调度: id={med.id}, time={med.time!r}")
                continue

            minutes_until = med.time_minutes - now_minutes
            if minutes_until < 0:
                continue

            slot = self._slots.get(med.id)
            if (
                slot is not None
                and slot.fired
                and slot.slot_date == today.isoformat()
                and slot.slot_minutes == med.time_minutes
            ):
                # 同一分钟内的重复扫描, 该时间点已经触发过
                continue

            self._arm(med, today.isoformat(), minutes_until)

        for medication_id in set(self._slots) - known_ids:
            self._drop(medication_id)

        self._last_pass_at = now
        runtime_metrics.record_pass()

    async def check_daily_reset(self, now: datetime | None = None) -> bool:
        """跨天检查, 启动时与每次重算共用"""
        today = (now or self._clock.now()).date()
        if not await self._store.check_daily_reset(today):
            return False
        runtime_metrics.record_daily_reset()
        bus.emit(E.DAILY_RESET, date=today.isoformat())
        return True

    def _arm(self, med: Medication, slot_date: str, minutes_until: int) -> None:
        previous = self._slots.pop(med.id, None)
        kept_pre_notice: TimerHandle | None = None
        if previous is not None:
            # 同一时间点沿用原来的提前提醒定时器
            if previous.slot_date == slot_date and previous.slot_minutes == med.time_minutes:
                kept_pre_notice, previous.pre_notice = previous.pre_notice, None
            previous.cancel_timers()

        slot = _ReminderSlot(
            medication_id=med.id,
            slot_date=slot_date,
            slot_minutes=med.time_minutes,
        )
        delay_s = minutes_until * 60
        slot.wake_up = self._timers.call_later(delay_s, partial(self.on_fired, med.id))
        if kept_pre_notice is not None:
            slot.pre_notice = kept_pre_notice
        elif minutes_until > self._pre_notice_minutes:
            slot.pre_notice = self._timers.call_later(
                delay_s - self._pre_notice_minutes * 60,
                partial(self._on_pre_notice, med.id),
            )
        self._slots[med.id] = slot
        runtime_metrics.record_wake_up_armed()
        logger.trace(f"已安排提醒: id={med.id}, time={med.time}, {minutes_until} 分钟后触发")

    def _drop(self, medication_id: int) -> None:
        slot = self._slots.pop(medication_id, None)
        if slot is not None:
            slot.cancel_timers()
            logger.debug(f"药已删除, 移除提醒槽: id={medication_id}")

    # ----------------- 定时器回调 ----------------
    def on_confirmed(self, medication_id: int) -> None:
        slot = self._slots.get(medication_id)
        if slot is None:
            return
        slot.cancel_timers()
        slot.state = EscalationState.CONFIRMED
        logger.debug(f"提醒已确认, 取消全部定时器: id={medication_id}")

    def on_fired(self, medication_id: int) -> None:
        slot = self._slots.get(medication_id)
        if slot is not None:
            slot.wake_up = None
            if slot.pre_notice is not None:
                slot.pre_notice.cancel()
                slot.pre_notice = None

        med = self._store.get(medication_id)
        if med is None or med.taken:
            runtime_metrics.record_stale_fire()
            logger.debug(f"过期的提醒触发, 已忽略: id={medication_id}")
            if med is None:
                self._drop(medication_id)
            elif slot is not None:
                slot.cancel_timers()
                slot.state = EscalationState.CONFIRMED
            return

        if slot is None:
            slot = _ReminderSlot(
                medication_id=medication_id,
                slot_date=self._clock.now().date().isoformat(),
                slot_minutes=med.time_minutes,
            )
            self._slots[medication_id] = slot

        if slot.escalation is not None:
            slot.escalation.cancel()
            slot.escalation = None
        slot.fired = True
        slot.state = EscalationState.ESCALATING
        slot.repetitions = 0
        runtime_metrics.record_fired()
        logger.info(f"服药提醒触发: id={med.id}, name={med.name}, time={med.time}")

        self._emit_reminder(med)
        bus.emit(E.REMINDER_TRIGGERED, medication=med)
        self._arm_escalation(slot)

    def _arm_escalation(self, slot: _ReminderSlot) -> None:
        if slot.repetitions >= self._escalation_max_repetitions:
            self._expire(slot)
            return
        slot.escalation = self._timers.call_later(
            self._escalation_interval_minutes * 60,
            partial(self._on_escalation_tick, slot.medication_id),
        )

    def _on_escalation_tick(self, medication_id: int) -> None:
        slot = self._slots.get(medication_id)
        if slot is None or slot.state != EscalationState.ESCALATING:
            return
        slot.escalation = None

        med = self._store.get(medication_id)
        if med is None:
            self._drop(medication_id)
            return
        if med.taken:
            slot.state = EscalationState.CONFIRMED
            return

        slot.repetitions += 1
        runtime_metrics.record_escalation_repeat()
        logger.info(f"服药提醒升级: id={med.id}, 第 {slot.repetitions} 次重复")
        self._emit_reminder(med)
        bus.emit(E.REMINDER_ESCALATED, medication=med, repetition=slot.repetitions)
        self._arm_escalation(slot)

    def _expire(self, slot: _ReminderSlot) -> None:
        slot.state = EscalationState.EXPIRED
        slot.escalation = None
        runtime_metrics.record_escalation_expired()
        logger.warning(f"提醒已达到重复上限, 停止提醒: id={slot.medication_id}, 重复 {slot.repetitions} 次")
        med = self._store.get(slot.medication_id)
        if med is not None:
            bus.emit(E.REMINDER_EXPIRED, medication=med)

    def _on_pre_notice(self, medication_id: int) -> None:
        slot = self._slots.get(medication_id)
        if slot is not None:
            slot.pre_notice = None
        med = self._store.get(medication_id)
        if med is None or med.taken:
            return
        try:
            self._notifier.emit_alert(f"Reminder: {med.name} in {self._pre_notice_minutes} minutes", Severity.INFO)
        except Exception as e:
            logger.exception(f"提前提醒发送失败: {e}")
        bus.emit(E.REMINDER_PRE_NOTICE, medication=med)

    def _emit_reminder(self, med: Medication) -> None:
        # 通知渠道的失败不影响调度
        try:
            self._notifier.emit_alert(f"Time to take {med.name} ({med.dosage})", Severity.WARNING)
            self._notifier.speak(f"Time to take your {med.name}")
            self._notifier.play_tone()
        except Exception as e:
            logger.exception(f"提醒发送失败: id={med.id}, error={e}")

    # ----------------- 生命周期 ----------------
    async def main_loop(self, shutdown_event: asyncio.Event) -> None:
        self._running = True
        logger.info("提醒调度主循环已启动")
        try:
            while not shutdown_event.is_set():
                try:
                    await self.reschedule_all()
                except Exception as e:
                    logger.exception(f"提醒调度重算失败: {e}")

                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self._reschedule_interval_s)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            self.shutdown()
            logger.info("提醒调度主循环已关闭")

    def shutdown(self) -> None:
        for slot in self._slots.values():
            slot.cancel_timers()
        self._slots.clear()

    # ----------------- 查询 ----------------
    def get_state(self, medication_id: int) -> EscalationState | None:
        slot = self._slots.get(medication_id)
        return slot.state if slot is not None else None

    def snapshot(self) -> list[ReminderSlotView]:
        return [slot.view() for slot in self._slots.values()]

    def get_status(self) -> dict[str, object]:
        states: dict[str, int] = {}
        for slot in self._slots.values():
            states[slot.state.value] = states.get(slot.state.value, 0) + 1
        return {
            "running": self._running,
            "last_pass_at": self._last_pass_at.isoformat() if self._last_pass_at else None,
            "slots": len(self._slots),
            "states": states,
        }
