"""ChangeFeed SQLite 实现

task_changes 表 append-only：每次任务 upsert 追加一条完整快照。
消费者通过 feed_leases 表记录检查点，检查点只在批次处理成功后推进，
因此投递语义为 at-least-once；检查点写入与读批次持有 StoreGroup 的写锁。
seq 全局单调，同一 task 内天然有序。
"""

import asyncio
from datetime import UTC, datetime

import aiosqlite
from pydantic import BaseModel, Field


class ChangeRecord(BaseModel):
    """变更日志中的一条记录"""

    seq: int = Field(description="全局单调递增序号")
    task_id: str = Field(description="关联的任务 ID")
    ts: datetime = Field(description="写入时间")
    payload: bytes = Field(description="TaskRecord 的原始 JSON 快照")


class SqliteChangeFeed:
    """ChangeFeed 的 SQLite 实现"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        write_lock: asyncio.Lock | None = None,
    ) -> None:
        self._conn = conn
        self._write_lock = write_lock or asyncio.Lock()

    async def append_change(self, task_id: str, payload: bytes) -> int:
        """追加变更（append-only）

        注意：此方法不自动提交事务，也不获取写锁，需由持有写锁的调用方管理事务。

        Returns:
            新变更的 seq
        """
        cursor = await self._conn.execute(
            "INSERT INTO task_changes (task_id, ts, payload) VALUES (?, ?, ?)",
            (task_id, datetime.now(UTC).isoformat(), payload),
        )
        return cursor.lastrowid

    async def get_checkpoint(self, lease: str) -> int:
        """获取租约检查点，未登记的租约从 0 开始"""
        cursor = await self._conn.execute(
            "SELECT checkpoint FROM feed_leases WHERE lease = ?",
            (lease,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def read_batch(self, lease: str, limit: int) -> list[ChangeRecord]:
        """读取检查点之后的一批变更，按 seq 正序

        持有写锁读取，不会看到尚未提交的任务写入事务追加的变更。
        """
        async with self._write_lock:
            checkpoint = await self.get_checkpoint(lease)
            cursor = await self._conn.execute(
                """
                SELECT seq, task_id, ts, payload FROM task_changes
                WHERE seq > ?
                ORDER BY seq ASC
                LIMIT ?
                """,
                (checkpoint, limit),
            )
            rows = await cursor.fetchall()
        return [self._row_to_change(row) for row in rows]

    async def checkpoint(self, lease: str, seq: int) -> None:
        """推进检查点（只前进不后退）"""
        async with self._write_lock:
            await self._conn.execute(
                """
                INSERT INTO feed_leases (lease, checkpoint, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(lease) DO UPDATE
                SET checkpoint = excluded.checkpoint, updated_at = excluded.updated_at
                WHERE excluded.checkpoint > feed_leases.checkpoint
                """,
                (lease, seq, datetime.now(UTC).isoformat()),
            )
            await self._conn.commit()

    async def get_lag(self, lease: str) -> int:
        """检查点之后尚未处理的变更条数"""
        checkpoint = await self.get_checkpoint(lease)
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM task_changes WHERE seq > ?",
            (checkpoint,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_change(row: aiosqlite.Row) -> ChangeRecord:
        """将数据库行转换为 ChangeRecord"""
        payload = row[3]
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        return ChangeRecord(
            seq=row[0],
            task_id=row[1],
            ts=datetime.fromisoformat(row[2]),
            payload=payload,
        )
