"""CLI 入口模块 -- python -m taskview.core <command>

支持的命令：
  run-feed [--once]  消费变更日志并更新用户视图（--once 追平后退出）
  rebuild-views      从 pending 任务重建全部用户视图
"""

import asyncio
import sys

from .config import get_db_path, load_materializer_config


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m taskview.core <command>")
        print("命令:")
        print("  run-feed [--once]  消费变更日志并更新用户视图")
        print("  rebuild-views      从 pending 任务重建全部用户视图")
        sys.exit(1)

    command = sys.argv[1]

    if command == "run-feed":
        asyncio.run(run_feed(once="--once" in sys.argv[2:]))
    elif command == "rebuild-views":
        asyncio.run(rebuild_views())
    else:
        print(f"未知命令: {command}")
        print("可用命令: run-feed, rebuild-views")
        sys.exit(1)


async def run_feed(once: bool = False) -> None:
    """运行变更源消费者"""
    from .driver import BatchDriver
    from .feed import ChangeFeedProcessor
    from .store import create_store_group
    from .updater import OptimisticViewUpdater

    db_path = get_db_path()
    config = load_materializer_config()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    driver = BatchDriver(
        OptimisticViewUpdater(store_group.view_store, config.retry),
        user_concurrency=config.user_concurrency,
    )
    processor = ChangeFeedProcessor(
        store_group.change_feed,
        driver,
        task_store=store_group.task_store,
        batch_size=config.feed_batch_size,
    )

    try:
        if once:
            processed = await processor.run_until_idle()
            print(f"处理完成，共 {processed} 条变更")
        else:
            await processor.run_forever(poll_interval_s=config.feed_poll_interval_s)
    finally:
        await store_group.conn.close()


async def rebuild_views() -> None:
    """执行视图重建"""
    from .projection import rebuild_all_views
    from .store import create_store_group

    db_path = get_db_path()

    print(f"数据库路径: {db_path}")
    print("开始重建用户视图...")

    store_group = await create_store_group(db_path)

    try:
        view_count = await rebuild_all_views(
            store_group.task_store,
            store_group.view_store,
        )
        print(f"重建完成，写入 {view_count} 个视图")
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
