"""TaskService -- 任务创建/更新/查询业务逻辑

createOrUpdateTask 流程：
1. 缺少 id 时生成 UUID，并为新任务补充 createddate
2. complete 任务设置 ttl，缺少 completeddate 时补充
3. 写入 tasks 表并追加变更日志（由物化器异步更新用户视图）

不做权限和内容校验，只要求 payload 能解析为 TaskRecord。
"""

import uuid
from datetime import UTC, datetime
from typing import Any

import structlog
from taskview.core.config import get_completed_task_ttl_s
from taskview.core.models import (
    TaskRecord,
    TaskStatus,
    TaskViewDocument,
    ViewFound,
    parse_task_record,
)
from taskview.core.store import StoreGroup

log = structlog.get_logger()


class TaskService:
    """任务业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        completed_ttl_s: int | None = None,
    ) -> None:
        self._stores = store_group
        if completed_ttl_s is None:
            completed_ttl_s = get_completed_task_ttl_s()
        self._completed_ttl_s = completed_ttl_s

    async def create_or_update_task(self, payload: dict[str, Any]) -> str:
        """创建或更新任务

        Args:
            payload: 客户端提交的任务 JSON

        Returns:
            任务 ID

        Raises:
            MalformedTaskEventError: payload 无法解析为 TaskRecord
        """
        payload = dict(payload)
        now = datetime.now(UTC).isoformat()

        if not payload.get("id"):
            payload["id"] = str(uuid.uuid4())
            # 数据生成器可能自带 createddate 以模拟历史数据
            payload.setdefault("createddate", now)

        if payload.get("status") == TaskStatus.COMPLETE.value:
            payload["ttl"] = self._completed_ttl_s
            payload.setdefault("completeddate", now)

        record = parse_task_record(payload)
        seq = await self._stores.task_store.upsert_task(record)

        await log.ainfo(
            "task_upserted",
            task_id=record.id,
            status=record.status.value,
            approver_count=len(record.approvers),
            change_seq=seq,
        )
        return record.id

    async def get_task(self, task_id: str) -> TaskRecord | None:
        """查询任务"""
        return await self._stores.task_store.get_task(task_id)

    async def get_view(self, user_id: str) -> TaskViewDocument | None:
        """查询用户视图，不存在时返回 None"""
        result = await self._stores.view_store.read_view(user_id)
        if isinstance(result, ViewFound):
            return result.document
        return None
