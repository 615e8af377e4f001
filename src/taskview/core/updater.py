"""OptimisticViewUpdater -- 单个 (任务事件, 用户) 的 CAS 更新

读取 -> 投影 -> 条件写/删 -> 版本冲突则重新读取。
冲突重试由 RetryPolicy 控制（tenacity 抖动指数退避），
max_attempts 为 None 时无限重试；其他存储异常直接向上传播。
"""

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    stop_never,
    wait_none,
    wait_random_exponential,
)

from .config import RetryPolicy
from .exceptions import ViewUpdateExhaustedError, ViewVersionConflictError
from .models.enums import ViewUpdateOutcome
from .models.task import TaskRecord
from .models.view import ViewFound
from .projection import project_view
from .store.protocols import ViewStore

log = structlog.get_logger()


def _log_conflict(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    log.debug(
        "view_version_conflict_retrying",
        attempt=retry_state.attempt_number,
        error=str(error),
    )


class OptimisticViewUpdater:
    """基于版本令牌的视图更新器

    不持有任何锁；同一视图的并发写者通过 CAS 失败后重读最新状态，
    保证本写者的变更不会丢失。
    """

    def __init__(
        self,
        view_store: ViewStore,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._view_store = view_store
        self._policy = retry_policy or RetryPolicy()

    def _retrying(self) -> AsyncRetrying:
        policy = self._policy
        if policy.max_attempts is None:
            stop = stop_never
        else:
            stop = stop_after_attempt(policy.max_attempts)

        if policy.base_delay_s > 0:
            wait = wait_random_exponential(
                multiplier=policy.base_delay_s,
                max=policy.max_delay_s,
            )
        else:
            wait = wait_none()

        return AsyncRetrying(
            stop=stop,
            wait=wait,
            retry=retry_if_exception_type(ViewVersionConflictError),
            before_sleep=_log_conflict,
            reraise=False,
        )

    async def apply(self, record: TaskRecord, user_id: str) -> ViewUpdateOutcome:
        """让用户视图反映该任务变更

        Args:
            record: 任务变更记录
            user_id: 目标用户

        Returns:
            ViewUpdateOutcome

        Raises:
            ViewUpdateExhaustedError: 冲突重试次数耗尽
            Exception: 其他存储异常原样传播
        """
        attempts = 0
        try:
            async for attempt in self._retrying():
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    outcome = await self._apply_once(record, user_id)
        except RetryError as e:
            await log.awarning(
                "view_update_retry_exhausted",
                user_id=user_id,
                task_id=record.id,
                attempts=attempts,
            )
            raise ViewUpdateExhaustedError(user_id, record.id, attempts) from (
                e.last_attempt.exception()
            )

        await log.ainfo(
            "task_view_updated",
            user_id=user_id,
            task_id=record.id,
            status=record.status.value,
            outcome=outcome.value,
            attempts=attempts,
        )
        return outcome

    async def _apply_once(self, record: TaskRecord, user_id: str) -> ViewUpdateOutcome:
        """单次尝试：冲突时抛出 ViewVersionConflictError 由外层重试"""
        result = await self._view_store.read_view(user_id)
        current = result.document if isinstance(result, ViewFound) else None

        candidate = project_view(record, user_id, current)

        if candidate.is_empty():
            if current is None:
                return ViewUpdateOutcome.UNCHANGED
            deleted = await self._view_store.delete_view(user_id, current.version)
            return ViewUpdateOutcome.DELETED if deleted else ViewUpdateOutcome.UNCHANGED

        if current is not None and candidate == current:
            return ViewUpdateOutcome.UNCHANGED

        expected_version = current.version if current is not None else None
        await self._view_store.write_view(candidate, expected_version)
        if current is None:
            return ViewUpdateOutcome.CREATED
        return ViewUpdateOutcome.UPDATED
