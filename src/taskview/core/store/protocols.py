"""Store Protocol 接口定义

定义 ViewStore、TaskStore、ChangeFeed 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
物化器只依赖 ViewStore，便于替换为其他带版本令牌的文档存储。
"""

from datetime import datetime
from typing import Protocol

from ..models.enums import TaskStatus
from ..models.task import TaskRecord
from ..models.view import TaskViewDocument, ViewReadResult
from .change_feed import ChangeRecord


class ViewStore(Protocol):
    """视图存储接口 -- 点读 + 条件写 + 条件删"""

    async def read_view(self, user_id: str) -> ViewReadResult:
        """读取视图，返回 ViewFound 或 ViewNotFound（不抛异常）"""
        ...

    async def write_view(
        self,
        document: TaskViewDocument,
        expected_version: str | None,
    ) -> str:
        """条件写入视图，返回新版本令牌

        expected_version 为 None 表示新建；版本不匹配或已存在时
        抛出 ViewVersionConflictError。
        """
        ...

    async def delete_view(self, user_id: str, expected_version: str) -> bool:
        """条件删除视图

        Returns:
            True 已删除；False 视图本就不存在

        Raises:
            ViewVersionConflictError: 版本不匹配
        """
        ...


class TaskStore(Protocol):
    """任务存储接口"""

    async def upsert_task(self, record: TaskRecord) -> int:
        """写入任务并追加变更日志，返回变更序号"""
        ...

    async def get_task(self, task_id: str) -> TaskRecord | None:
        """根据 task_id 查询任务"""
        ...

    async def list_tasks(self, status: TaskStatus | None = None) -> list[TaskRecord]:
        """查询任务列表，支持按状态筛选"""
        ...

    async def purge_expired_tasks(self, now: datetime | None = None) -> int:
        """删除 ttl 已到期的完成任务，返回删除条数"""
        ...


class ChangeFeed(Protocol):
    """变更源接口 -- at-least-once 批量投递"""

    async def read_batch(self, lease: str, limit: int) -> list[ChangeRecord]:
        """读取检查点之后的一批变更"""
        ...

    async def checkpoint(self, lease: str, seq: int) -> None:
        """推进检查点"""
        ...
