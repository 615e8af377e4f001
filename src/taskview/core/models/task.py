"""TaskRecord Domain Model

变更事件的标准 payload。已知字段为封闭集合，
类型相关的扩展字段（如 vacation 的 startdate、invoice 的 amount）
保留在 extensions 中，序列化时原样写回。
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import MalformedTaskEventError
from .enums import TaskStatus


class Approver(BaseModel):
    """审批人"""

    id: str = Field(description="审批人用户 ID")
    name: str = Field(default="", description="审批人显示名称")


class TaskRecord(BaseModel):
    """审批任务记录

    未声明的顶层字段进入 extensions（pydantic extra="allow"）。
    本模型只校验结构，不校验内容（例如不要求至少一个审批人）。
    """

    model_config = ConfigDict(extra="allow")

    id: str = Field(description="任务唯一标识")
    type: str = Field(default="", description="任务类型标签，如 vacation / invoice")
    status: TaskStatus = Field(description="任务状态")
    submittedby: str = Field(description="提交者用户 ID")
    summary: str = Field(default="", description="任务摘要")
    detail: str = Field(default="", description="任务详情")
    approvers: list[Approver] = Field(default_factory=list, description="审批人列表（有序）")
    ttl: int | None = Field(
        default=None,
        description="完成后源记录保留秒数，到期由任务存储物理删除",
    )
    createddate: str | None = Field(default=None, description="创建时间（ISO 8601）")
    completeddate: str | None = Field(default=None, description="完成时间（ISO 8601）")

    @property
    def extensions(self) -> dict[str, Any]:
        """类型相关的扩展字段"""
        return dict(self.model_extra or {})

    def to_payload(self) -> bytes:
        """序列化为变更日志中的原始 payload"""
        return self.model_dump_json(exclude_none=True).encode("utf-8")


def parse_task_record(raw: bytes | str | dict[str, Any]) -> TaskRecord:
    """将变更事件的原始 payload 解析为 TaskRecord

    Args:
        raw: JSON 字节串、JSON 字符串或已解码的 dict

    Returns:
        TaskRecord 实例

    Raises:
        MalformedTaskEventError: payload 不是合法 JSON 或缺少必需字段
    """
    try:
        if isinstance(raw, dict):
            return TaskRecord.model_validate(raw)
        return TaskRecord.model_validate_json(raw)
    except (ValidationError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedTaskEventError(str(e)) from e
