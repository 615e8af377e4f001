"""配置模块 -- 可通过环境变量覆盖

包含数据库路径、视图 CAS 重试策略、变更源轮询参数等可配置项。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("TASKVIEW_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "TASKVIEW_DB_PATH",
        str(_get_base_dir() / "sqlite" / "taskview.db"),
    )


# 变更源消费者的默认租约名
DEFAULT_FEED_LEASE: str = "task-views"

# 完成任务在任务存储中的默认保留时间（秒），到期后物理删除
DEFAULT_COMPLETED_TASK_TTL_S: int = 300


class RetryPolicy(BaseModel):
    """视图 CAS 冲突重试策略

    max_attempts 为 None 表示无限重试，
    否则耗尽后抛出 ViewUpdateExhaustedError。
    """

    max_attempts: int | None = Field(default=20, ge=1, description="最大尝试次数")
    base_delay_s: float = Field(default=0.005, ge=0, description="退避基数（秒）")
    max_delay_s: float = Field(default=0.5, ge=0, description="单次退避上限（秒）")


class MaterializerConfig(BaseModel):
    """物化器运行配置

    环境变量:
        TASKVIEW_VIEW_MAX_ATTEMPTS: CAS 最大尝试次数（0 表示无限）
        TASKVIEW_VIEW_RETRY_BASE_DELAY_MS: 退避基数（毫秒）
        TASKVIEW_VIEW_RETRY_MAX_DELAY_MS: 单次退避上限（毫秒）
        TASKVIEW_USER_CONCURRENCY: 单个事件内并发更新的用户数
        TASKVIEW_FEED_BATCH_SIZE: 每批读取的变更条数
        TASKVIEW_FEED_POLL_INTERVAL_S: 变更源轮询间隔（秒）
        TASKVIEW_FEED_ENABLED: gateway 是否在后台运行变更源消费者
    """

    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    user_concurrency: int = Field(default=1, ge=1)
    feed_batch_size: int = Field(default=100, ge=1)
    feed_poll_interval_s: float = Field(default=1.0, gt=0)
    feed_enabled: bool = Field(default=True)


def _read_int(env_var: str, fallback: int) -> int:
    val = os.environ.get(env_var)
    if val is None or val == "":
        return fallback
    try:
        return int(val)
    except ValueError:
        log.warning(
            "invalid_int_config",
            env_var=env_var,
            value=val,
            fallback=fallback,
        )
        return fallback


def _read_float(env_var: str, fallback: float) -> float:
    val = os.environ.get(env_var)
    if val is None or val == "":
        return fallback
    try:
        return float(val)
    except ValueError:
        log.warning(
            "invalid_float_config",
            env_var=env_var,
            value=val,
            fallback=fallback,
        )
        return fallback


def get_completed_task_ttl_s() -> int:
    """获取完成任务的 ttl（秒），非法值回退到默认值"""
    return max(
        0,
        _read_int("TASKVIEW_COMPLETED_TASK_TTL_S", DEFAULT_COMPLETED_TASK_TTL_S),
    )


def load_materializer_config() -> MaterializerConfig:
    """从环境变量加载物化器配置

    非法数值记录 warning 并回退到默认值，不阻塞启动。
    """
    defaults = RetryPolicy()
    max_attempts = _read_int("TASKVIEW_VIEW_MAX_ATTEMPTS", defaults.max_attempts or 0)
    retry = RetryPolicy(
        max_attempts=max_attempts if max_attempts > 0 else None,
        base_delay_s=max(
            0.0,
            _read_float(
                "TASKVIEW_VIEW_RETRY_BASE_DELAY_MS", defaults.base_delay_s * 1000
            )
            / 1000,
        ),
        max_delay_s=max(
            0.0,
            _read_float(
                "TASKVIEW_VIEW_RETRY_MAX_DELAY_MS", defaults.max_delay_s * 1000
            )
            / 1000,
        ),
    )

    enabled = os.environ.get("TASKVIEW_FEED_ENABLED", "true").lower()

    return MaterializerConfig(
        retry=retry,
        user_concurrency=max(1, _read_int("TASKVIEW_USER_CONCURRENCY", 1)),
        feed_batch_size=max(1, _read_int("TASKVIEW_FEED_BATCH_SIZE", 100)),
        feed_poll_interval_s=max(0.01, _read_float("TASKVIEW_FEED_POLL_INTERVAL_S", 1.0)),
        feed_enabled=enabled not in ("false", "0", "no"),
    )
