"""用户视图路由

GET /api/views/{user_id}: 查询用户的待处理任务视图。
没有任何待处理任务的用户不存在视图文档，返回 404。
"""

from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from ..deps import get_store_group
from ..services.task_service import TaskService

router = APIRouter()


@router.get("/api/views/{user_id}")
async def get_view(
    user_id: str,
    store_group=Depends(get_store_group),
):
    """查询用户视图"""
    service = TaskService(store_group)
    view = await service.get_view(user_id)

    if view is None:
        return JSONResponse(
            status_code=404,
            content={
                "error": {
                    "code": "VIEW_NOT_FOUND",
                    "message": f"User {user_id} has no pending tasks",
                }
            },
        )

    return view.model_dump(mode="json", exclude={"version"}, exclude_none=True)
