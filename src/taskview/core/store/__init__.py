"""TaskView Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from pathlib import Path

import aiosqlite

from .change_feed import ChangeRecord, SqliteChangeFeed
from .protocols import ChangeFeed, TaskStore, ViewStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .view_store import SqliteViewStore


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接

    sqlite3 连接上的事务是连接级的：任何协程的 commit/rollback 都会作用于
    其他协程已执行未提交的语句。write_lock 串行化所有写事务（执行到提交/回滚）。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.write_lock = asyncio.Lock()
        self.change_feed = SqliteChangeFeed(conn, self.write_lock)
        self.task_store = SqliteTaskStore(conn, self.change_feed, self.write_lock)
        self.view_store = SqliteViewStore(conn, self.write_lock)


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "ChangeRecord",
    "SqliteChangeFeed",
    "SqliteTaskStore",
    "SqliteViewStore",
    "ChangeFeed",
    "TaskStore",
    "ViewStore",
    "init_db",
]
