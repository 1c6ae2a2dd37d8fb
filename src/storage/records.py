from __future__ import annotations

from typing import Generic, Protocol, TypeVar

from datamodel import *
from logger import logger
import storage.kv as kv

APPOINTMENTS_KEY = "appointments"
JOURNAL_KEY = "journalEntries"


class _Record(Protocol):
    def to_dict(self) -> dict: ...


R = TypeVar("R", bound=_Record)


class RecordListPersistence(Generic[R]):
    """把一类记录作为 JSON 列表保存在键值存储的一个键下"""

    def __init__(self, key: str, record_type: type[R]) -> None:
        self.key = key
        self._record_type = record_type

    async def save(self, records: list[R]) -> None:
        await kv.set_item(self.key, [r.to_dict() for r in records])

    async def load(self) -> list[R]:
        records: list[R] = []
        for item in await kv.get_item(self.key, []) or []:
            try:
                records.append(self._record_type.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"跳过无法解析的记录: key={self.key}, item={item!r}, error={e}")
        logger.debug(f"已加载 {self.key} 记录 {len(records)} 条")
        return records


def appointment_persistence() -> RecordListPersistence[Appointment]:
    return RecordListPersistence(APPOINTMENTS_KEY, Appointment)


def journal_persistence() -> RecordListPersistence[JournalEntry]:
    return RecordListPersistence(JOURNAL_KEY, JournalEntry)


__all__ = [
    "RecordListPersistence", "appointment_persistence", "journal_persistence",
    "APPOINTMENTS_KEY", "JOURNAL_KEY",
]
