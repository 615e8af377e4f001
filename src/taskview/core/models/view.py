"""TaskViewDocument Domain Model

每个用户一份的反规范化视图：mytasks 为本人提交的待处理任务，
approvaltasks 为等待本人审批的任务。
视图文档是 tasks 的物化视图，只能由物化器根据任务变更事件更新。
"""

from pydantic import BaseModel, Field


class TaskViewEntry(BaseModel):
    """视图中的单个任务条目

    submittedby 仅在 approvaltasks 中出现。
    """

    id: str = Field(description="任务 ID")
    type: str = Field(default="", description="任务类型")
    summary: str = Field(default="", description="任务摘要")
    submittedby: str | None = Field(default=None, description="提交者（仅审批条目）")


class TaskViewDocument(BaseModel):
    """用户视图文档

    version 为存储层提供的不透明版本令牌，条件写入时必须携带；
    从未持久化的视图 version 为 None。
    """

    id: str = Field(description="所属用户 ID，同时是存储主键")
    mytasks: list[TaskViewEntry] = Field(default_factory=list)
    approvaltasks: list[TaskViewEntry] = Field(default_factory=list)
    version: str | None = Field(default=None, description="版本令牌")

    def is_empty(self) -> bool:
        """两个集合均为空时视图不应被持久化"""
        return not self.mytasks and not self.approvaltasks

    def to_body(self) -> str:
        """序列化为存储正文（不含版本令牌）"""
        return self.model_dump_json(exclude={"version"}, exclude_none=True)


class ViewFound(BaseModel):
    """读取结果：视图存在"""

    document: TaskViewDocument

    @property
    def version(self) -> str | None:
        return self.document.version


class ViewNotFound(BaseModel):
    """读取结果：该用户没有视图"""

    user_id: str


ViewReadResult = ViewFound | ViewNotFound
