from abc import ABC, abstractmethod

from datamodel import Medication, Severity

__all__ = ["NotificationSink", "DeviceSync"]


class NotificationSink(ABC):
    """提醒输出: 弹窗/语音/提示音, 均为发出即忘"""

    @abstractmethod
    def emit_alert(self, message: str, severity: Severity = Severity.INFO) -> None:
        pass

    @abstractmethod
    def speak(self, text: str) -> None:
        pass

    @abstractmethod
    def play_tone(self) -> None:
        pass


class DeviceSync(ABC):
    """外部药盒设备的同步客户端, 协议不在本项目范围内"""

    @abstractmethod
    async def push_medication(self, medication: Medication) -> None:
        pass

    @abstractmethod
    async def remove_medication(self, medication_id: int) -> None:
        pass

    @abstractmethod
    async def confirm(self, medication_id: int, taken_at: str | None) -> None:
        pass
