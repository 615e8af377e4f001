"""任务路由

PUT/POST /api/tasks: 创建或更新任务，返回任务 ID。
GET /api/tasks/{task_id}: 查询任务。
"""

from typing import Any

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from starlette.responses import JSONResponse
from taskview.core.exceptions import MalformedTaskEventError

from ..deps import get_store_group
from ..services.task_service import TaskService

router = APIRouter()


class TaskUpsertResponse(BaseModel):
    """任务写入响应"""

    id: str


@router.put("/api/tasks", response_model=TaskUpsertResponse)
@router.post("/api/tasks", response_model=TaskUpsertResponse)
async def create_or_update_task(
    payload: dict[str, Any] = Body(...),
    store_group=Depends(get_store_group),
):
    """创建或更新任务；用户视图由变更源异步更新"""
    service = TaskService(store_group)
    try:
        task_id = await service.create_or_update_task(payload)
    except MalformedTaskEventError as e:
        return JSONResponse(
            status_code=422,
            content={
                "error": {
                    "code": "INVALID_TASK",
                    "message": str(e),
                }
            },
        )
    return TaskUpsertResponse(id=task_id)


@router.get("/api/tasks/{task_id}")
async def get_task(
    task_id: str,
    store_group=Depends(get_store_group),
):
    """查询任务详情"""
    service = TaskService(store_group)
    task = await service.get_task(task_id)

    if task is None:
        return JSONResponse(
            status_code=404,
            content={
                "error": {
                    "code": "TASK_NOT_FOUND",
                    "message": f"Task with id {task_id} does not exist",
                }
            },
        )

    return task.model_dump(mode="json", exclude_none=True)
