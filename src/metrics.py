"""
一个简单的运行时指标收集类，用于统计提醒调度的次数、触发与升级情况，方便后续扩展和监控。
"""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass
class RuntimeMetrics:
    reschedule_pass_count: int = 0
    wake_up_armed_count: int = 0
    reminder_fired_count: int = 0
    stale_fire_count: int = 0
    escalation_repeat_count: int = 0
    escalation_expired_count: int = 0
    confirmation_count: int = 0
    daily_reset_count: int = 0
    last_pass_at: float | None = None

    def record_pass(self) -> None:
        self.reschedule_pass_count += 1
        self.last_pass_at = time.time()

    def record_wake_up_armed(self) -> None:
        self.wake_up_armed_count += 1

    def record_fired(self) -> None:
        self.reminder_fired_count += 1

    def record_stale_fire(self) -> None:
        self.stale_fire_count += 1

    def record_escalation_repeat(self) -> None:
        self.escalation_repeat_count += 1

    def record_escalation_expired(self) -> None:
        self.escalation_expired_count += 1

    def record_confirmation(self) -> None:
        self.confirmation_count += 1

    def record_daily_reset(self) -> None:
        self.daily_reset_count += 1

    def reset(self) -> None:
        for name, default in RuntimeMetrics.__dataclass_fields__.items():
            setattr(self, name, default.default)

    def snapshot(self) -> dict:
        return {
            "reschedule_pass_count": self.reschedule_pass_count,
            "wake_up_armed_count": self.wake_up_armed_count,
            "reminder_fired_count": self.reminder_fired_count,
            "stale_fire_count": self.stale_fire_count,
            "escalation_repeat_count": self.escalation_repeat_count,
            "escalation_expired_count": self.escalation_expired_count,
            "confirmation_count": self.confirmation_count,
            "daily_reset_count": self.daily_reset_count,
            "last_pass_at_epoch": self.last_pass_at,
            "last_pass_at_utc": (
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.last_pass_at))
                if self.last_pass_at is not None
                else None
            ),
        }


runtime_metrics = RuntimeMetrics()


__all__ = ["RuntimeMetrics", "runtime_metrics"]
