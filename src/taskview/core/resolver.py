"""受影响用户解析

一个任务变更需要更新提交者和每个审批人的视图。
"""

from .models.task import TaskRecord


def resolve_affected_users(record: TaskRecord) -> list[str]:
    """计算需要更新视图的用户

    返回有序且去重的用户 ID 列表：提交者在前，审批人按声明顺序在后。
    没有审批人的记录至少返回提交者。

    Args:
        record: 任务变更记录

    Returns:
        用户 ID 列表
    """
    user_ids = [record.submittedby, *(approver.id for approver in record.approvers)]
    return list(dict.fromkeys(user_ids))
