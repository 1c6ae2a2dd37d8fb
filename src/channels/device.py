"""药盒设备同步

设备同步只订阅事件总线, 同步失败只记录警告, 不会阻塞或重试提醒调度。
"""

from __future__ import annotations

from channels.base import DeviceSync
from datamodel import Medication
from events import bus, E
from logger import logger

__all__ = ["NullDeviceSync", "register_device_sync"]


class NullDeviceSync(DeviceSync):
    """未配置设备时使用, 只写调试日志"""

    async def push_medication(self, medication: Medication) -> None:
        logger.debug(f"独立模式, 跳过设备同步: medication_id={medication.id}")

    async def remove_medication(self, medication_id: int) -> None:
        logger.debug(f"独立模式, 跳过设备删除同步: medication_id={medication_id}")

    async def confirm(self, medication_id: int, taken_at: str | None) -> None:
        logger.debug(f"独立模式, 跳过设备确认同步: medication_id={medication_id}")


def register_device_sync(device: DeviceSync) -> None:
    """把设备同步挂到事件总线上"""

    @bus.on(E.MEDICATION_ADDED)
    async def _sync_added(medication: Medication, **_) -> None:
        try:
            await device.push_medication(medication)
        except Exception as e:
            logger.warning(f"同步新增到设备失败: medication_id={medication.id}, error={e}")

    @bus.on(E.MEDICATION_UPDATED)
    async def _sync_updated(medication: Medication, **_) -> None:
        try:
            await device.push_medication(medication)
        except Exception as e:
            logger.warning(f"同步修改到设备失败: medication_id={medication.id}, error={e}")

    @bus.on(E.MEDICATION_DELETED)
    async def _sync_deleted(medication: Medication, **_) -> None:
        try:
            await device.remove_medication(medication.id)
        except Exception as e:
            logger.warning(f"同步删除到设备失败: medication_id={medication.id}, error={e}")

    @bus.on(E.MEDICATION_CONFIRMED)
    async def _sync_confirmed(medication: Medication, **_) -> None:
        try:
            await device.confirm(medication.id, medication.taken_at)
        except Exception as e:
            logger.warning(f"同步服药确认到设备失败: medication_id={medication.id}, error={e}")

    logger.info(f"设备同步已注册: {device.__class__.__name__}")
