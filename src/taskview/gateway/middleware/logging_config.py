"""structlog 配置模块

dev 模式：pretty print 可读输出
json 模式：结构化 JSON 输出
Logfire APM：LOGFIRE_SEND_TO_LOGFIRE 环境变量控制，false 时降级为纯本地日志。
变更源消费者的日志额外携带 worker / lease 上下文。
"""

import logging
import os

import structlog
from fastapi import FastAPI

# 后台变更源消费者在日志中的名称
FEED_WORKER_NAME = "feed-worker"


def setup_logging() -> None:
    """初始化 structlog 配置

    根据 TASKVIEW_LOG_FORMAT 环境变量选择渲染模式：
    - "json": 结构化 JSON 输出（生产环境）
    - "dev" (默认): pretty print 可读输出
    """
    log_format = os.environ.get("TASKVIEW_LOG_FORMAT", "dev")
    log_level = os.environ.get("TASKVIEW_LOG_LEVEL", "INFO")

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # 物化器和存储层的日志统一走标准库 handler
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # 不输出 aiosqlite 的逐语句 DEBUG 日志
    logging.getLogger("aiosqlite").setLevel(max(root_logger.level, logging.INFO))


def bind_feed_worker_context(lease: str, worker: str = FEED_WORKER_NAME) -> None:
    """为变更源消费者绑定日志上下文

    需在消费者自己的 asyncio 任务内调用：任务创建时复制 contextvars，
    绑定只影响该任务，不会带进 HTTP 请求日志。
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(worker=worker, lease=lease)


def setup_logfire(app: FastAPI) -> None:
    """Logfire 可选初始化

    LOGFIRE_SEND_TO_LOGFIRE 环境变量控制：
    - "true": 启用 Logfire APM（需要 LOGFIRE_TOKEN，安装 apm extra）
    - "false" (默认): 纯本地日志
    """
    send_to_logfire = os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower()
    if send_to_logfire != "true":
        return
    try:
        import logfire

        logfire.configure()
        logfire.instrument_fastapi(app)
    except Exception as e:
        structlog.get_logger().warning(
            "logfire_init_failed",
            error=str(e),
            message="Logfire 初始化失败，使用纯本地日志",
        )
