"""SQLite 数据库初始化

PRAGMA 配置 + 四张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL：任务记录当前状态
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id     TEXT PRIMARY KEY,
    status      TEXT NOT NULL,
    submittedby TEXT NOT NULL,
    body        TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    expires_at  TEXT
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_expires_at ON tasks(expires_at) "
    "WHERE expires_at IS NOT NULL;",
]

# task_changes 表 DDL：变更日志（append-only），即物化器的变更源
_TASK_CHANGES_DDL = """
CREATE TABLE IF NOT EXISTS task_changes (
    seq      INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id  TEXT NOT NULL,
    ts       TEXT NOT NULL,
    payload  BLOB NOT NULL
);
"""

_TASK_CHANGES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_task_changes_task_id ON task_changes(task_id, seq);",
]

# feed_leases 表 DDL：变更源消费者检查点
_FEED_LEASES_DDL = """
CREATE TABLE IF NOT EXISTS feed_leases (
    lease       TEXT PRIMARY KEY,
    checkpoint  INTEGER NOT NULL DEFAULT 0,
    updated_at  TEXT NOT NULL
);
"""

# task_views 表 DDL：每用户一行的视图文档，version 为 CAS 令牌
_TASK_VIEWS_DDL = """
CREATE TABLE IF NOT EXISTS task_views (
    user_id     TEXT PRIMARY KEY,
    body        TEXT NOT NULL,
    version     TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    await conn.execute(_TASKS_DDL)
    await conn.execute(_TASK_CHANGES_DDL)
    await conn.execute(_FEED_LEASES_DDL)
    await conn.execute(_TASK_VIEWS_DDL)

    for idx_sql in _TASKS_INDEXES + _TASK_CHANGES_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
