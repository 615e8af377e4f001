"""tests/gateway 测试配置 -- httpx AsyncClient + 手动初始化的 StoreGroup"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from taskview.core.config import MaterializerConfig, RetryPolicy
from taskview.core.feed import ChangeFeedProcessor
from taskview.core.store import create_store_group


@pytest_asyncio.fixture
async def test_app(tmp_path: Path):
    """测试用 FastAPI app（绕过 lifespan，不启动后台消费者）"""
    os.environ["TASKVIEW_DB_PATH"] = str(tmp_path / "test.db")
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from taskview.gateway.main import create_app

    app = create_app()

    store_group = await create_store_group(str(tmp_path / "test.db"))
    app.state.store_group = store_group
    app.state.feed_task = None

    yield app

    await store_group.conn.close()
    os.environ.pop("TASKVIEW_DB_PATH", None)
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def processor(test_app) -> ChangeFeedProcessor:
    """与 app 共享 StoreGroup 的变更源消费者，由测试手动驱动"""
    from taskview.gateway.main import build_feed_processor

    config = MaterializerConfig(retry=RetryPolicy(max_attempts=None, base_delay_s=0))
    return build_feed_processor(test_app.state.store_group, config)
