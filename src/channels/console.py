from __future__ import annotations

from collections import deque
from typing import Any

from channels.base import NotificationSink
from datamodel import Severity
from logger import logger
from utils import Clock

__all__ = ["LogNotificationSink"]

_SEVERITY_LEVEL = {
    Severity.INFO: "INFO",
    Severity.SUCCESS: "SUCCESS",
    Severity.WARNING: "WARNING",
    Severity.ERROR: "ERROR",
}


class LogNotificationSink(NotificationSink):
    """
    把提醒写入日志, 并保留最近的若干条提醒供 HTTP API 读取。
    真正的语音播报与提示音由前端或设备负责, 这里只记录请求, 不进入提醒列表。
    """

    def __init__(self, clock: Clock, max_items: int = 100) -> None:
        self._clock = clock
        self._alerts: deque[dict[str, Any]] = deque(maxlen=max_items)
        self.speech_count = 0
        self.tone_count = 0

    def emit_alert(self, message: str, severity: Severity = Severity.INFO) -> None:
        severity = Severity(severity)
        logger.log(_SEVERITY_LEVEL[severity], f"[提醒] {message}")
        self._alerts.append({
            "text": message,
            "severity": severity.value,
            "at": self._clock.now().isoformat(),
        })

    def speak(self, text: str) -> None:
        self.speech_count += 1
        logger.debug(f"[语音] {text}")

    def play_tone(self) -> None:
        self.tone_count += 1
        logger.trace("[提示音]")

    def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        """最近的提醒, 新的在前"""
        items = list(self._alerts)[-limit:]
        items.reverse()
        return items
