"""物化器异常体系

版本冲突由 CAS 重试循环在本地消化；
其余异常向上传播到 BatchDriver 和变更源，由变更源重新投递批次。
"""


class TaskViewError(Exception):
    """taskview 基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试或重新投递恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class ViewVersionConflictError(TaskViewError):
    """条件写入/删除时版本令牌不匹配

    说明读取之后有并发写者修改了该视图，需要重新读取再试。
    """

    def __init__(self, user_id: str, expected_version: str | None) -> None:
        super().__init__(
            f"视图版本冲突: user={user_id} expected_version={expected_version}",
            recoverable=True,
        )
        self.user_id = user_id
        self.expected_version = expected_version


class ViewUpdateExhaustedError(TaskViewError):
    """重试策略耗尽，视图仍未写入成功"""

    def __init__(self, user_id: str, task_id: str, attempts: int) -> None:
        super().__init__(
            f"视图更新重试耗尽: user={user_id} task={task_id} attempts={attempts}",
            recoverable=True,
        )
        self.user_id = user_id
        self.task_id = task_id
        self.attempts = attempts


class MalformedTaskEventError(TaskViewError):
    """变更事件 payload 无法解析为 TaskRecord

    重新投递同一 payload 不会成功，因此标记为不可恢复。
    """

    def __init__(self, message: str) -> None:
        super().__init__(f"无法解析任务事件: {message}", recoverable=False)
