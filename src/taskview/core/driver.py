"""BatchDriver -- 批量任务变更事件驱动

按投递顺序逐个处理事件；每个事件解析出受影响用户后，
对每个用户运行 OptimisticViewUpdater。任何异常都不吞掉，
由变更源负责重新投递（已应用的事件再次处理是幂等的）。
"""

import asyncio
from collections import Counter
from collections.abc import Sequence
from typing import Any

import structlog
from pydantic import BaseModel, Field

from .models.enums import ViewUpdateOutcome
from .models.task import TaskRecord, parse_task_record
from .resolver import resolve_affected_users
from .updater import OptimisticViewUpdater

log = structlog.get_logger()

RawTaskEvent = bytes | str | dict[str, Any]


class BatchResult(BaseModel):
    """一个批次的处理统计"""

    event_count: int = Field(default=0, description="处理的事件数")
    view_update_count: int = Field(default=0, description="执行的 (事件, 用户) 更新数")
    outcomes: dict[ViewUpdateOutcome, int] = Field(
        default_factory=dict,
        description="各更新结果的计数",
    )


class BatchDriver:
    """批次驱动器

    user_concurrency == 1 时单个事件的用户逐个更新；
    大于 1 时同一事件的不同用户并发更新（各自独立的 CAS 循环，最终状态一致）。
    """

    def __init__(
        self,
        updater: OptimisticViewUpdater,
        user_concurrency: int = 1,
    ) -> None:
        self._updater = updater
        self._user_concurrency = max(1, user_concurrency)

    async def process_batch(self, raw_events: Sequence[RawTaskEvent]) -> BatchResult:
        """处理一批原始事件

        Raises:
            MalformedTaskEventError: 某个 payload 无法解析（整个批次失败）
            Exception: 视图更新失败原样传播
        """
        if not raw_events:
            return BatchResult()

        await log.ainfo("task_batch_received", event_count=len(raw_events))

        counter: Counter[ViewUpdateOutcome] = Counter()
        for raw in raw_events:
            record = parse_task_record(raw)
            outcomes = await self.process_record(record)
            counter.update(outcomes.values())

        return BatchResult(
            event_count=len(raw_events),
            view_update_count=sum(counter.values()),
            outcomes=dict(counter),
        )

    async def process_record(self, record: TaskRecord) -> dict[str, ViewUpdateOutcome]:
        """将单个任务变更应用到所有受影响用户的视图

        Returns:
            user_id -> ViewUpdateOutcome
        """
        user_ids = resolve_affected_users(record)

        if self._user_concurrency == 1:
            outcomes = {}
            for user_id in user_ids:
                outcomes[user_id] = await self._updater.apply(record, user_id)
            return outcomes

        semaphore = asyncio.Semaphore(self._user_concurrency)

        async def _apply(user_id: str) -> ViewUpdateOutcome:
            async with semaphore:
                return await self._updater.apply(record, user_id)

        # 等所有用户都结束后再抛出第一个异常，避免遗留后台协程
        results = await asyncio.gather(
            *(_apply(user_id) for user_id in user_ids),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return dict(zip(user_ids, results, strict=True))
