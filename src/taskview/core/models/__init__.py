"""TaskView Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import TaskStatus, ViewRole, ViewUpdateOutcome
from .task import Approver, TaskRecord, parse_task_record
from .view import (
    TaskViewDocument,
    TaskViewEntry,
    ViewFound,
    ViewNotFound,
    ViewReadResult,
)

__all__ = [
    # 枚举
    "TaskStatus",
    "ViewRole",
    "ViewUpdateOutcome",
    # TaskRecord
    "Approver",
    "TaskRecord",
    "parse_task_record",
    # View
    "TaskViewDocument",
    "TaskViewEntry",
    "ViewFound",
    "ViewNotFound",
    "ViewReadResult",
]
