from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Protocol

__all__ = ["TimerHandle", "TimerSource", "AsyncioTimerSource"]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerSource(ABC):
    """一次性定时器的来源, 测试时替换为手动推进的实现"""

    @abstractmethod
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        pass


class AsyncioTimerSource(TimerSource):
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay_s), callback)
