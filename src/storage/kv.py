"""键值存储, 值以 JSON 编码保存, 对应旧版浏览器里的 localStorage"""

import json
from typing import Any

import storage.db_config as db_config
from logger import logger


def _ensure_conn():
    if db_config.conn is None:
        raise RuntimeError("数据库未初始化，请先调用 init_db()")


async def get_item(key: str, default: Any = None) -> Any:
    _ensure_conn()
    async with db_config.conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)) as cursor:
        row = await cursor.fetchone()
    if row is None:
        return default
    try:
        return json.loads(row[0])
    except json.JSONDecodeError as e:
        logger.error(f"键值存储中的数据无法解析: key={key}, error={e}")
        return default


async def set_items(items: dict[str, Any]) -> None:
    """在同一事务中写入多个键"""
    _ensure_conn()
    try:
        for key, value in items.items():
            await db_config.conn.execute(
                "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at_utc = CURRENT_TIMESTAMP",
                (key, json.dumps(value, ensure_ascii=False)),
            )
        await db_config.conn.commit()
    except Exception as e:
        await db_config.conn.rollback()
        logger.error(f"写入键值存储失败, 已回滚: keys={list(items)}, error={e}")
        raise
    logger.trace(f"写入键值存储: keys={list(items)}")


async def set_item(key: str, value: Any) -> None:
    await set_items({key: value})


async def remove_item(key: str) -> None:
    _ensure_conn()
    await db_config.conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
    await db_config.conn.commit()


__all__ = ["get_item", "set_item", "set_items", "remove_item"]
