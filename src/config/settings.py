import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from logger import logger
load_dotenv()

__all__ = [
    "USER_TIMEZONE", "PATIENT_NAME",
    "DB_PATH", "LOG_FILE", "LOG_LEVEL",
    "RESCHEDULE_INTERVAL_SECONDS", "PRE_NOTICE_MINUTES",
    "ESCALATION_INTERVAL_MINUTES", "ESCALATION_MAX_REPETITIONS",
    "ADMIN_HTTP_HOST", "ADMIN_HTTP_PORT",
    "DEVICE_SYNC_ENABLED", "DEVICE_BASE_URL",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw}, 已回退到 {default}")
        return default
    if value < minimum:
        logger.warning(f"{name} 不能小于 {minimum}, 已回退到 {default}")
        return default
    return value


# 用户信息
PATIENT_NAME = os.getenv("PATIENT_NAME", "")
USER_TIMEZONE = os.getenv("USER_TIMEZONE", "UTC")
try:
    ZoneInfo(USER_TIMEZONE)
except (ZoneInfoNotFoundError, ValueError):
    logger.critical(f"USER_TIMEZONE 非法: {USER_TIMEZONE}, 需要 IANA 时区名, 例如 Asia/Shanghai")
    exit(1)


# 存储与日志
DB_PATH = os.getenv("DB_PATH", "data/medicare.db")
LOG_FILE = os.getenv("LOG_FILE", "logs/medicare.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").strip().upper()


# 提醒节奏
RESCHEDULE_INTERVAL_SECONDS = _parse_int("RESCHEDULE_INTERVAL_SECONDS", 60, minimum=1)
PRE_NOTICE_MINUTES = _parse_int("PRE_NOTICE_MINUTES", 15, minimum=1)
ESCALATION_INTERVAL_MINUTES = _parse_int("ESCALATION_INTERVAL_MINUTES", 5, minimum=1)
ESCALATION_MAX_REPETITIONS = _parse_int("ESCALATION_MAX_REPETITIONS", 6, minimum=0)


# 本地 HTTP API
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
ADMIN_HTTP_PORT = _parse_int("ADMIN_HTTP_PORT", 18080, minimum=1)
if ADMIN_HTTP_HOST not in ("127.0.0.1", "localhost", "::1"):
    logger.warning(f"HTTP API 没有鉴权, 当前监听地址 {ADMIN_HTTP_HOST} 可能暴露给局域网")


# 药盒设备同步
DEVICE_SYNC_ENABLED = _parse_bool("DEVICE_SYNC_ENABLED", False)
DEVICE_BASE_URL = os.getenv("DEVICE_BASE_URL", "")
if DEVICE_SYNC_ENABLED and DEVICE_BASE_URL == "":
    logger.warning("已启用设备同步, 但 DEVICE_BASE_URL 未设置, 将以独立模式运行")
