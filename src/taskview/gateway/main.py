"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 变更源消费者启动/停止 + 路由注册。
"""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from taskview.core.config import (
    MaterializerConfig,
    get_db_path,
    load_materializer_config,
)
from taskview.core.driver import BatchDriver
from taskview.core.feed import ChangeFeedProcessor
from taskview.core.store import StoreGroup, create_store_group
from taskview.core.updater import OptimisticViewUpdater

from .middleware.logging_config import (
    bind_feed_worker_context,
    setup_logfire,
    setup_logging,
)
from .middleware.logging_mw import LoggingMiddleware
from .routes import health, tasks, views

log = structlog.get_logger()


def build_feed_processor(
    store_group: StoreGroup,
    config: MaterializerConfig,
) -> ChangeFeedProcessor:
    """按配置组装变更源消费者"""
    updater = OptimisticViewUpdater(store_group.view_store, config.retry)
    driver = BatchDriver(updater, user_concurrency=config.user_concurrency)
    processor = ChangeFeedProcessor(
        store_group.change_feed,
        driver,
        task_store=store_group.task_store,
        batch_size=config.feed_batch_size,
    )
    return processor


async def run_feed_worker(
    processor: ChangeFeedProcessor,
    config: MaterializerConfig,
    stop_event: asyncio.Event,
) -> None:
    """后台消费者任务入口：绑定日志上下文后进入轮询循环"""
    bind_feed_worker_context(processor.lease)
    await processor.run_forever(
        poll_interval_s=config.feed_poll_interval_s,
        stop_event=stop_event,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 和变更源消费者，关闭时清理"""
    store_group = await create_store_group(get_db_path())
    app.state.store_group = store_group

    config = load_materializer_config()
    app.state.feed_task = None
    stop_event = asyncio.Event()
    if config.feed_enabled:
        processor = build_feed_processor(store_group, config)
        app.state.feed_task = asyncio.create_task(
            run_feed_worker(processor, config, stop_event)
        )
        log.info(
            "feed_worker_started",
            batch_size=config.feed_batch_size,
            user_concurrency=config.user_concurrency,
            max_attempts=config.retry.max_attempts,
        )
    else:
        log.info("feed_worker_disabled")

    yield

    # 关闭：先停消费者再关连接
    if app.state.feed_task is not None:
        stop_event.set()
        try:
            await asyncio.wait_for(app.state.feed_task, timeout=5)
        except TimeoutError:
            app.state.feed_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await app.state.feed_task

    await store_group.conn.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="TaskView Gateway",
        version="0.1.0",
        description="审批任务与用户视图 API",
        lifespan=lifespan,
    )

    app.add_middleware(LoggingMiddleware)

    setup_logging()
    setup_logfire(app)

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(views.router, tags=["views"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
