"""TaskStore SQLite 实现

tasks 表保存任务当前状态；每次 upsert 在同一事务内向 task_changes
追加完整快照，供物化器消费。完成任务带 ttl 时记录 expires_at，
到期由 purge_expired_tasks 物理删除（删除不进入变更日志）。
写事务持有 StoreGroup 的写锁，共享连接上的其他提交或回滚不会穿插其中。
"""

import asyncio
from datetime import UTC, datetime, timedelta

import aiosqlite

from ..models.enums import TaskStatus
from ..models.task import TaskRecord
from .change_feed import SqliteChangeFeed


def _ts(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="microseconds")


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        change_feed: SqliteChangeFeed,
        write_lock: asyncio.Lock | None = None,
    ) -> None:
        self._conn = conn
        self._change_feed = change_feed
        self._write_lock = write_lock or asyncio.Lock()

    async def upsert_task(self, record: TaskRecord) -> int:
        """写入任务并追加变更日志（同一事务）

        Returns:
            新变更的 seq

        Raises:
            Exception: 如果事务提交失败，自动回滚
        """
        now = datetime.now(UTC)
        expires_at = None
        if record.status == TaskStatus.COMPLETE and record.ttl is not None:
            expires_at = _ts(now + timedelta(seconds=record.ttl))

        payload = record.to_payload()
        async with self._write_lock:
            try:
                await self._conn.execute(
                    """
                    INSERT INTO tasks (task_id, status, submittedby, body, updated_at, expires_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(task_id) DO UPDATE
                    SET status = excluded.status,
                        submittedby = excluded.submittedby,
                        body = excluded.body,
                        updated_at = excluded.updated_at,
                        expires_at = excluded.expires_at
                    """,
                    (
                        record.id,
                        record.status.value,
                        record.submittedby,
                        payload.decode("utf-8"),
                        _ts(now),
                        expires_at,
                    ),
                )
                seq = await self._change_feed.append_change(record.id, payload)
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise
        return seq

    async def get_task(self, task_id: str) -> TaskRecord | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            "SELECT body FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return TaskRecord.model_validate_json(row[0])

    async def list_tasks(self, status: TaskStatus | None = None) -> list[TaskRecord]:
        """查询任务列表，支持按状态筛选，按 updated_at 正序"""
        if status:
            cursor = await self._conn.execute(
                "SELECT body FROM tasks WHERE status = ? ORDER BY updated_at ASC",
                (status.value,),
            )
        else:
            cursor = await self._conn.execute(
                "SELECT body FROM tasks ORDER BY updated_at ASC"
            )
        rows = await cursor.fetchall()
        return [TaskRecord.model_validate_json(row[0]) for row in rows]

    async def purge_expired_tasks(self, now: datetime | None = None) -> int:
        """删除 ttl 已到期的完成任务

        Returns:
            删除的任务数
        """
        cutoff = _ts(now or datetime.now(UTC))
        async with self._write_lock:
            cursor = await self._conn.execute(
                "DELETE FROM tasks WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (cutoff,),
            )
            await self._conn.commit()
        return cursor.rowcount
