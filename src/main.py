from logger import setup_logging, logger
from config.settings import *
setup_logging(
    log_level=LOG_LEVEL,
    log_file=LOG_FILE,
    console_level="INFO",
)

import asyncio
import signal

from admin.http_server import main_loop as admin_http_main
from channels.base import DeviceSync
from channels.console import LogNotificationSink
from channels.device import NullDeviceSync, register_device_sync
from core.assistant import MedicationAssistant
from storage.medication import MedicationPersistence
from storage.records import appointment_persistence, journal_persistence
import storage.db_config as db_config
from utils import SystemClock
from world.medications import MedicationStore
from world.records import AppointmentBook, HealthJournal
from world.reminder import ReminderScheduler
from world.timers import AsyncioTimerSource

shutdown_event = asyncio.Event()

def signal_handler(sig, frame):
    """处理 SIGINT (Ctrl+C) / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()

def _create_device_sync() -> DeviceSync:
    """目前只有独立模式, 设备协议由外部实现"""
    if DEVICE_SYNC_ENABLED and DEVICE_BASE_URL:
        logger.warning(f"尚未内置设备同步实现, 忽略 DEVICE_BASE_URL={DEVICE_BASE_URL}")
    else:
        logger.info("未配置药盒设备, 以独立模式运行")
    return NullDeviceSync()


async def main():
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    await db_config.init_db(DB_PATH)

    clock = SystemClock(USER_TIMEZONE)
    notifier = LogNotificationSink(clock)
    store = MedicationStore(MedicationPersistence(), clock)
    scheduler = ReminderScheduler(
        store,
        notifier,
        clock,
        AsyncioTimerSource(),
        reschedule_interval_s=RESCHEDULE_INTERVAL_SECONDS,
        pre_notice_minutes=PRE_NOTICE_MINUTES,
        escalation_interval_minutes=ESCALATION_INTERVAL_MINUTES,
        escalation_max_repetitions=ESCALATION_MAX_REPETITIONS,
    )
    assistant = MedicationAssistant(
        store,
        scheduler,
        notifier,
        clock,
        patient_name=PATIENT_NAME,
        appointments=AppointmentBook(appointment_persistence(), clock),
        journal=HealthJournal(journal_persistence(), clock),
    )
    register_device_sync(_create_device_sync())

    try:
        await assistant.start()
        await asyncio.gather(
            scheduler.main_loop(shutdown_event),
            admin_http_main(shutdown_event, assistant),
        )
    finally:
        logger.info("关闭服药助手...")
        scheduler.shutdown()

        logger.info("关闭数据库连接...")
        await db_config.close_db()
        logger.info("服药助手已关闭")


def run() -> None:
    logger.info("启动服药助手...")
    asyncio.run(main())


if __name__ == "__main__":
    run()
