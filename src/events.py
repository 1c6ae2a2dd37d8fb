"""事件总线模块，定义了事件总线类 Bus 及事件名集合 E

服药相关的领域事件都通过 bus 广播，设备同步等外部协作方只需订阅事件，
其失败不会影响提醒调度本身。
"""

from __future__ import annotations
from pyee.asyncio import AsyncIOEventEmitter
from typing import Awaitable, Callable

from logger import logger

AsyncHandler = Callable[..., Awaitable[None]]

# 事件名集中定义
class E:
    MEDICATION_ADDED = "medication.added"
    MEDICATION_UPDATED = "medication.updated"
    MEDICATION_DELETED = "medication.deleted"
    MEDICATION_CONFIRMED = "medication.confirmed"
    MEDICATION_LOW_STOCK = "medication.low_stock"
    REMINDER_PRE_NOTICE = "reminder.pre_notice"
    REMINDER_TRIGGERED = "reminder.triggered"
    REMINDER_ESCALATED = "reminder.escalated"
    REMINDER_EXPIRED = "reminder.expired"
    DAILY_RESET = "schedule.daily_reset"
    APPOINTMENT_ADDED = "appointment.added"
    APPOINTMENT_DELETED = "appointment.deleted"
    APPOINTMENT_UPCOMING = "appointment.upcoming"
    JOURNAL_ADDED = "journal.added"
    JOURNAL_DELETED = "journal.deleted"
    DEVICE_BUTTON_PRESSED = "device.button_pressed"


class Bus(AsyncIOEventEmitter):
    def on(self, event: str) -> Callable[[AsyncHandler], AsyncHandler]:
        """注册事件处理器装饰器"""
        def decorator(handler: AsyncHandler) -> AsyncHandler:
            logger.debug(f"注册事件处理器: {event} -> {handler.__name__}")
            super(Bus, self).on(event, handler)
            return handler

        return decorator


bus = Bus()

__all__ = ["bus", "E", "Bus"]
