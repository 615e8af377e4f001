"""LoggingMiddleware

为每个 HTTP 请求生成 request_id，绑定到 structlog contextvars；
路径中带任务 ID 或用户 ID 时一并绑定，便于按任务/用户检索日志。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

# 路径前缀 -> 绑定的上下文键
_PATH_CONTEXT_KEYS = {
    "tasks": "task_id",
    "views": "user_id",
}


def _path_context(path: str) -> dict[str, str]:
    """从 /api/tasks/{task_id} 或 /api/views/{user_id} 提取上下文"""
    parts = [p for p in path.split("/") if p]
    context = {}
    for i, part in enumerate(parts[:-1]):
        key = _PATH_CONTEXT_KEYS.get(part)
        if key:
            context[key] = parts[i + 1]
    return context


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件 -- 为每个请求生成 request_id"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(ULID())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            **_path_context(request.url.path),
        )

        log = structlog.get_logger()
        await log.ainfo("request_started")

        response = await call_next(request)

        await log.ainfo(
            "request_completed",
            status_code=response.status_code,
        )

        response.headers["X-Request-ID"] = request_id
        return response
