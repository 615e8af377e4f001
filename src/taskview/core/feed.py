"""ChangeFeedProcessor -- 变更源消费者

从 task_changes 读取批次交给 BatchDriver，成功后才推进租约检查点。
批次失败时检查点不动，下一轮整批重新投递（at-least-once）。
"""

import asyncio

import structlog

from .config import DEFAULT_FEED_LEASE
from .driver import BatchDriver
from .store.change_feed import SqliteChangeFeed
from .store.task_store import SqliteTaskStore

log = structlog.get_logger()


class ChangeFeedProcessor:
    """变更源轮询处理器"""

    def __init__(
        self,
        change_feed: SqliteChangeFeed,
        driver: BatchDriver,
        task_store: SqliteTaskStore | None = None,
        lease: str = DEFAULT_FEED_LEASE,
        batch_size: int = 100,
    ) -> None:
        """
        Args:
            change_feed: 变更源
            driver: 批次驱动器
            task_store: 提供时每轮空闲后清理 ttl 到期的完成任务
            lease: 租约名（检查点键）
            batch_size: 每批最多读取的变更条数
        """
        self._change_feed = change_feed
        self._driver = driver
        self._task_store = task_store
        self._lease = lease
        self._batch_size = batch_size

    @property
    def lease(self) -> str:
        return self._lease

    async def run_once(self) -> int:
        """处理一个批次

        Returns:
            本批处理的变更条数，0 表示已追平
        """
        batch = await self._change_feed.read_batch(self._lease, self._batch_size)
        if not batch:
            return 0

        result = await self._driver.process_batch([change.payload for change in batch])
        await self._change_feed.checkpoint(self._lease, batch[-1].seq)

        await log.ainfo(
            "change_feed_batch_processed",
            lease=self._lease,
            first_seq=batch[0].seq,
            last_seq=batch[-1].seq,
            event_count=result.event_count,
            view_update_count=result.view_update_count,
        )
        return len(batch)

    async def run_until_idle(self) -> int:
        """连续处理直到追平变更日志

        Returns:
            处理的变更总数
        """
        total = 0
        while True:
            processed = await self.run_once()
            if processed == 0:
                return total
            total += processed

    async def run_forever(
        self,
        poll_interval_s: float = 1.0,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """后台轮询循环，直到 stop_event 被设置或任务被取消

        批次失败只记录日志并在下一轮重试同一批次。
        """
        stop_event = stop_event or asyncio.Event()
        await log.ainfo("change_feed_started", lease=self._lease)

        while not stop_event.is_set():
            processed = 0
            try:
                processed = await self.run_once()
                if processed == 0 and self._task_store is not None:
                    purged = await self._task_store.purge_expired_tasks()
                    if purged:
                        await log.ainfo("expired_tasks_purged", count=purged)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await log.aerror(
                    "change_feed_batch_failed",
                    lease=self._lease,
                    error_type=type(e).__name__,
                    error=str(e),
                )

            if processed == 0:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=poll_interval_s)
                except TimeoutError:
                    pass

        await log.ainfo("change_feed_stopped", lease=self._lease)
