"""枚举定义

包含 TaskStatus（审批任务状态）、ViewRole（用户在任务中的角色）
以及 ViewUpdateOutcome（单个用户视图的更新结果）。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """审批任务状态

    物化器只关心 pending -> complete 这一条流转；
    complete 之后源记录由 ttl 负责物理清理。
    """

    PENDING = "pending"
    COMPLETE = "complete"


class ViewRole(StrEnum):
    """用户相对于某个任务的角色"""

    # 提交者：条目写入 mytasks
    OWNER = "owner"
    # 审批人：条目写入 approvaltasks，并携带 submittedby
    APPROVER = "approver"


class ViewUpdateOutcome(StrEnum):
    """一次 (任务事件, 用户) 视图更新的最终结果"""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    UNCHANGED = "unchanged"
