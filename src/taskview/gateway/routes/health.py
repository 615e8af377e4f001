"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性和变更源积压。
"""

import structlog
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse
from taskview.core.config import DEFAULT_FEED_LEASE

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. sqlite: 数据库连通性
    2. feed_lag: 尚未物化的变更条数（仅信息，不影响就绪状态）
    3. feed_worker: 后台消费者是否在运行（running / stopped / disabled）
    """
    checks = {}
    all_ok = True

    try:
        store_group = request.app.state.store_group
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
        checks["feed_lag"] = await store_group.change_feed.get_lag(DEFAULT_FEED_LEASE)
    except Exception as e:
        log.warning("readiness_sqlite_failed", error=str(e))
        checks["sqlite"] = "unavailable"
        all_ok = False

    feed_task = getattr(request.app.state, "feed_task", None)
    if feed_task is None:
        checks["feed_worker"] = "disabled"
    elif feed_task.done():
        checks["feed_worker"] = "stopped"
        all_ok = False
    else:
        checks["feed_worker"] = "running"

    status_code = 200 if all_ok else 503
    status_text = "ready" if all_ok else "not_ready"

    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_text,
            "checks": checks,
        },
    )
