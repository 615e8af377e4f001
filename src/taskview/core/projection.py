"""视图投影模块

project_view 是纯函数：给定任务变更和用户当前视图，返回期望的新视图。
pending 按任务 ID upsert（重复投递不会产生重复条目），
complete 按任务 ID 删除（条目不存在不是错误）。
rebuild_all_views 从任务存储中的 pending 任务全量重建视图表。
"""

import time

import structlog

from .models.enums import TaskStatus, ViewRole
from .models.task import TaskRecord
from .models.view import TaskViewDocument, TaskViewEntry
from .resolver import resolve_affected_users
from .store.task_store import SqliteTaskStore
from .store.view_store import SqliteViewStore

log = structlog.get_logger()


def role_for(record: TaskRecord, user_id: str) -> ViewRole:
    """用户是提交者则为 OWNER，否则为 APPROVER"""
    if record.submittedby == user_id:
        return ViewRole.OWNER
    return ViewRole.APPROVER


def build_entry(record: TaskRecord, role: ViewRole) -> TaskViewEntry:
    """由任务记录构建视图条目，审批条目携带 submittedby"""
    return TaskViewEntry(
        id=record.id,
        type=record.type,
        summary=record.summary,
        submittedby=record.submittedby if role == ViewRole.APPROVER else None,
    )


def _upsert_entry(entries: list[TaskViewEntry], entry: TaskViewEntry) -> list[TaskViewEntry]:
    result = []
    replaced = False
    for existing in entries:
        if existing.id == entry.id:
            # 同一任务只保留一条，位置不变
            if not replaced:
                result.append(entry)
                replaced = True
            continue
        result.append(existing)
    if not replaced:
        result.append(entry)
    return result


def _remove_entry(entries: list[TaskViewEntry], task_id: str) -> list[TaskViewEntry]:
    return [entry for entry in entries if entry.id != task_id]


def project_view(
    record: TaskRecord,
    user_id: str,
    current: TaskViewDocument | None,
) -> TaskViewDocument:
    """将单个任务变更投影到用户视图

    Args:
        record: 任务变更记录
        user_id: 目标用户
        current: 用户当前视图，None 表示不存在

    Returns:
        新视图（可能为空，由调用方决定删除）。不修改 current。
    """
    if current is None:
        current = TaskViewDocument(id=user_id)

    role = role_for(record, user_id)
    field = "mytasks" if role == ViewRole.OWNER else "approvaltasks"
    entries: list[TaskViewEntry] = getattr(current, field)

    if record.status == TaskStatus.PENDING:
        updated = _upsert_entry(entries, build_entry(record, role))
    else:
        updated = _remove_entry(entries, record.id)

    return current.model_copy(update={field: updated})


async def rebuild_all_views(
    task_store: SqliteTaskStore,
    view_store: SqliteViewStore,
) -> int:
    """从任务存储重建全部视图

    流程：
    1. 读取所有 pending 任务
    2. 在内存中投影，构建每个用户的视图
    3. 清空 task_views 表
    4. 写入所有非空视图

    重建期间不应同时运行变更源消费者。

    Returns:
        写入的视图数
    """
    start_time = time.monotonic()

    tasks = await task_store.list_tasks(TaskStatus.PENDING)
    await log.ainfo("view_rebuild_started", pending_task_count=len(tasks))

    views: dict[str, TaskViewDocument] = {}
    for record in tasks:
        for user_id in resolve_affected_users(record):
            views[user_id] = project_view(record, user_id, views.get(user_id))

    await view_store.delete_all_views()

    written = 0
    for document in views.values():
        if document.is_empty():
            continue
        await view_store.write_view(document, expected_version=None)
        written += 1

    elapsed_ms = int((time.monotonic() - start_time) * 1000)
    await log.ainfo(
        "view_rebuild_completed",
        pending_task_count=len(tasks),
        view_count=written,
        elapsed_ms=elapsed_ms,
    )
    return written
