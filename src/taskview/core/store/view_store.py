"""ViewStore SQLite 实现

task_views 表每个用户一行，version 列为不透明的 CAS 版本令牌（ULID）。
每个操作都是单条语句，冲突通过受影响行数判断，不依赖异常回滚，
避免在共享连接上回滚其他协程的未提交语句。
写操作持有 StoreGroup 的写锁直到提交，与任务写入事务互斥。
"""

import asyncio
from datetime import UTC, datetime

import aiosqlite
from ulid import ULID

from ..exceptions import ViewVersionConflictError
from ..models.view import TaskViewDocument, ViewFound, ViewNotFound, ViewReadResult


class SqliteViewStore:
    """ViewStore 的 SQLite 实现"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        write_lock: asyncio.Lock | None = None,
    ) -> None:
        self._conn = conn
        self._write_lock = write_lock or asyncio.Lock()

    async def read_view(self, user_id: str) -> ViewReadResult:
        """点读用户视图"""
        cursor = await self._conn.execute(
            "SELECT body, version FROM task_views WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return ViewNotFound(user_id=user_id)
        document = TaskViewDocument.model_validate_json(row[0])
        return ViewFound(document=document.model_copy(update={"version": row[1]}))

    async def write_view(
        self,
        document: TaskViewDocument,
        expected_version: str | None,
    ) -> str:
        """条件写入

        expected_version 为 None 时仅在视图不存在时插入；
        否则仅在存储中的版本与 expected_version 一致时更新。
        """
        new_version = str(ULID())
        now = datetime.now(UTC).isoformat()

        async with self._write_lock:
            if expected_version is None:
                cursor = await self._conn.execute(
                    """
                    INSERT INTO task_views (user_id, body, version, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(user_id) DO NOTHING
                    """,
                    (document.id, document.to_body(), new_version, now),
                )
            else:
                cursor = await self._conn.execute(
                    """
                    UPDATE task_views
                    SET body = ?, version = ?, updated_at = ?
                    WHERE user_id = ? AND version = ?
                    """,
                    (document.to_body(), new_version, now, document.id, expected_version),
                )

            if cursor.rowcount != 1:
                raise ViewVersionConflictError(document.id, expected_version)

            await self._conn.commit()
        return new_version

    async def delete_view(self, user_id: str, expected_version: str) -> bool:
        """条件删除

        Returns:
            True 已删除；False 视图本就不存在
        """
        async with self._write_lock:
            cursor = await self._conn.execute(
                "DELETE FROM task_views WHERE user_id = ? AND version = ?",
                (user_id, expected_version),
            )
            if cursor.rowcount == 1:
                await self._conn.commit()
                return True

            # 未删除任何行：区分"已被别人删掉"和"版本已变化"
            cursor = await self._conn.execute(
                "SELECT 1 FROM task_views WHERE user_id = ?",
                (user_id,),
            )
            if await cursor.fetchone() is not None:
                raise ViewVersionConflictError(user_id, expected_version)
        return False

    async def delete_all_views(self) -> int:
        """清空所有视图（仅供全量重建使用）"""
        async with self._write_lock:
            cursor = await self._conn.execute("DELETE FROM task_views")
            await self._conn.commit()
        return cursor.rowcount

    async def count_views(self) -> int:
        """视图文档总数"""
        cursor = await self._conn.execute("SELECT COUNT(*) FROM task_views")
        row = await cursor.fetchone()
        return row[0] if row else 0
