from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional
from enum import Enum
from datetime import datetime

from utils import time_to_minutes

__all__ = [
    "Medication", "AdherenceCounters", "Appointment", "JournalEntry",
    "Severity", "EscalationState", "ReminderSlotView",
]

# ----------------- Medication 数据模型 ----------------
@dataclass
class Medication:
    id: int  # 创建时的毫秒时间戳
    name: str
    dosage: str
    time: str  # 格式: "HH:MM", 每天重复
    frequency: str = ""  # 仅作展示, 不参与调度
    taken: bool = False  # 今日是否已服用
    taken_at: Optional[str] = None  # ISO 时间戳
    stock: int = 0
    refill_alert: int = 0  # 库存低于等于该值时提醒补药, 0 表示不提醒
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def time_minutes(self) -> int:
        return time_to_minutes(self.time)

    @property
    def is_low_stock(self) -> bool:
        return self.stock > 0 and self.refill_alert > 0 and self.stock <= self.refill_alert

    def to_dict(self) -> Dict[str, Any]:
        """持久化格式, 键名与旧版浏览器存储保持一致"""
        return {
            "id": self.id,
            "name": self.name,
            "dosage": self.dosage,
            "time": self.time,
            "frequency": self.frequency,
            "taken": self.taken,
            "takenAt": self.taken_at,
            "stock": self.stock,
            "refillAlert": self.refill_alert,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Medication":
        return cls(
            id=int(data["id"]),
            name=str(data.get("name", "")),
            dosage=str(data.get("dosage", "")),
            time=str(data.get("time", "")),
            frequency=str(data.get("frequency") or ""),
            taken=bool(data.get("taken", False)),
            taken_at=data.get("takenAt"),
            stock=int(data.get("stock") or 0),
            refill_alert=int(data.get("refillAlert") or 0),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


# ----------------- Adherence 数据模型 ----------------
@dataclass
class AdherenceCounters:
    taken: int = 0
    total: int = 0
    streak: int = 0
    last_reset: Optional[str] = None  # 格式: "YYYY-MM-DD"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taken": self.taken,
            "total": self.total,
            "streak": self.streak,
            "lastReset": self.last_reset,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdherenceCounters":
        return cls(
            taken=int(data.get("taken") or 0),
            total=int(data.get("total") or 0),
            streak=int(data.get("streak") or 0),
            last_reset=data.get("lastReset"),
        )


# ----------------- 就诊预约与健康日记 ----------------
@dataclass
class Appointment:
    id: int
    doctor: str
    date_time: str  # 本地时间 "YYYY-MM-DDTHH:MM"
    type: str = ""
    location: str = ""
    notes: str = ""
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "doctor": self.doctor,
            "type": self.type,
            "dateTime": self.date_time,
            "location": self.location,
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Appointment":
        datetime.fromisoformat(data["dateTime"])
        return cls(
            id=int(data["id"]),
            doctor=str(data.get("doctor", "")),
            date_time=str(data["dateTime"]),
            type=str(data.get("type") or ""),
            location=str(data.get("location") or ""),
            notes=str(data.get("notes") or ""),
            created_at=data.get("createdAt"),
        )


@dataclass
class JournalEntry:
    id: int
    date: str  # 格式: "YYYY-MM-DD"
    mood: str  # great / good / okay / bad / terrible
    symptoms: str = ""
    notes: str = ""
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "mood": self.mood,
            "symptoms": self.symptoms,
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JournalEntry":
        return cls(
            id=int(data["id"]),
            date=str(data["date"]),
            mood=str(data.get("mood", "")),
            symptoms=str(data.get("symptoms") or ""),
            notes=str(data.get("notes") or ""),
            created_at=data.get("createdAt"),
        )


# ----------------- Reminder 数据模型 ----------------
class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class EscalationState(str, Enum):
    ARMED = "armed"
    ESCALATING = "escalating"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"


@dataclass
class ReminderSlotView:
    """调度器内部提醒槽的只读快照, 供 HTTP API 展示"""
    medication_id: int
    state: EscalationState
    repetitions: int = 0
    wake_up_pending: bool = False
    pre_notice_pending: bool = False
    escalation_pending: bool = False
    slot_date: Optional[str] = None
    slot_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data
