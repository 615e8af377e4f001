"""BatchDriver 测试

测试内容：
1. 提交 -> 完成 的完整视图生命周期
2. 重复投递幂等、按顺序收敛
3. 空批次、非法 payload、更新失败的处理
4. 用户并发更新与顺序更新结果一致
"""

import json
from unittest.mock import AsyncMock

import pytest
from taskview.core.config import RetryPolicy
from taskview.core.driver import BatchDriver
from taskview.core.exceptions import MalformedTaskEventError
from taskview.core.models import (
    ViewFound,
    ViewNotFound,
    ViewUpdateOutcome,
    parse_task_record,
)
from taskview.core.store import StoreGroup, create_store_group
from taskview.core.updater import OptimisticViewUpdater


def _event(
    task_id: str = "T1",
    status: str = "pending",
    submittedby: str = "alice",
    approvers: tuple[str, ...] = ("bob",),
    summary: str = "Beach week",
) -> bytes:
    return json.dumps(
        {
            "id": task_id,
            "type": "vacation",
            "status": status,
            "submittedby": submittedby,
            "summary": summary,
            "approvers": [{"id": a, "name": a.title()} for a in approvers],
        }
    ).encode("utf-8")


def _driver(store_group: StoreGroup, user_concurrency: int = 1) -> BatchDriver:
    updater = OptimisticViewUpdater(
        store_group.view_store,
        RetryPolicy(max_attempts=None, base_delay_s=0),
    )
    return BatchDriver(updater, user_concurrency=user_concurrency)


async def _view_body(store_group: StoreGroup, user_id: str) -> dict | None:
    result = await store_group.view_store.read_view(user_id)
    if isinstance(result, ViewNotFound):
        return None
    return json.loads(result.document.to_body())


class TestTaskLifecycle:
    """提交与完成"""

    async def test_submit_creates_owner_and_approver_views(self, store_group: StoreGroup):
        result = await _driver(store_group).process_batch([_event()])

        assert result.event_count == 1
        assert result.outcomes == {ViewUpdateOutcome.CREATED: 2}
        assert await _view_body(store_group, "alice") == {
            "id": "alice",
            "mytasks": [{"id": "T1", "type": "vacation", "summary": "Beach week"}],
            "approvaltasks": [],
        }
        assert await _view_body(store_group, "bob") == {
            "id": "bob",
            "mytasks": [],
            "approvaltasks": [
                {
                    "id": "T1",
                    "type": "vacation",
                    "summary": "Beach week",
                    "submittedby": "alice",
                }
            ],
        }

    async def test_complete_deletes_emptied_views(self, store_group: StoreGroup):
        driver = _driver(store_group)
        await driver.process_batch([_event()])

        result = await driver.process_batch([_event(status="complete")])

        assert result.outcomes == {ViewUpdateOutcome.DELETED: 2}
        assert await store_group.view_store.count_views() == 0

    async def test_complete_keeps_other_tasks(self, store_group: StoreGroup):
        driver = _driver(store_group)
        await driver.process_batch([_event("T1"), _event("T2", summary="Conference")])

        await driver.process_batch([_event("T1", status="complete")])

        body = await _view_body(store_group, "bob")
        assert [e["id"] for e in body["approvaltasks"]] == ["T2"]

    async def test_complete_without_prior_pending(self, store_group: StoreGroup):
        result = await _driver(store_group).process_batch([_event(status="complete")])
        assert result.outcomes == {ViewUpdateOutcome.UNCHANGED: 2}
        assert await store_group.view_store.count_views() == 0

    async def test_submitter_also_approver(self, store_group: StoreGroup):
        """同一用户只更新一次，条目进入 mytasks"""
        result = await _driver(store_group).process_batch(
            [_event(approvers=("alice", "bob"))]
        )
        assert result.view_update_count == 2
        body = await _view_body(store_group, "alice")
        assert [e["id"] for e in body["mytasks"]] == ["T1"]
        assert body["approvaltasks"] == []


class TestRedelivery:
    """重复投递与顺序收敛"""

    async def test_duplicate_pending_in_batch(self, store_group: StoreGroup):
        await _driver(store_group).process_batch([_event(), _event()])
        body = await _view_body(store_group, "bob")
        assert len(body["approvaltasks"]) == 1

    async def test_redelivered_batch_is_idempotent(self, store_group: StoreGroup):
        driver = _driver(store_group)
        batch = [_event("T1"), _event("T2"), _event("T1", status="complete")]
        await driver.process_batch(batch)
        first = await _view_body(store_group, "bob")

        result = await driver.process_batch(batch)

        assert await _view_body(store_group, "bob") == first
        assert ViewUpdateOutcome.CREATED not in result.outcomes

    async def test_last_event_wins(self, store_group: StoreGroup):
        await _driver(store_group).process_batch(
            [
                _event(summary="draft"),
                _event(summary="final"),
                _event(status="complete"),
                _event(status="complete"),
            ]
        )
        assert await store_group.view_store.count_views() == 0

    async def test_updated_summary_replaces_entry(self, store_group: StoreGroup):
        await _driver(store_group).process_batch(
            [_event(summary="draft"), _event(summary="final")]
        )
        body = await _view_body(store_group, "bob")
        assert [e["summary"] for e in body["approvaltasks"]] == ["final"]


class TestBatchFailures:
    """批次失败处理"""

    async def test_empty_batch(self):
        updater = AsyncMock()
        result = await BatchDriver(updater).process_batch([])
        assert result.event_count == 0
        assert result.view_update_count == 0
        updater.apply.assert_not_awaited()

    async def test_malformed_payload_fails_batch(self, store_group: StoreGroup):
        driver = _driver(store_group)
        with pytest.raises(MalformedTaskEventError):
            await driver.process_batch([_event("T1"), b"not json", _event("T2")])

        # 之前的事件已经应用，之后的没有
        body = await _view_body(store_group, "bob")
        assert [e["id"] for e in body["approvaltasks"]] == ["T1"]

    async def test_update_failure_propagates(self):
        updater = AsyncMock()
        updater.apply.side_effect = RuntimeError("store unavailable")
        with pytest.raises(RuntimeError, match="store unavailable"):
            await BatchDriver(updater).process_batch([_event()])

    async def test_concurrent_update_failure_propagates(self):
        updater = AsyncMock()
        updater.apply.side_effect = [ViewUpdateOutcome.CREATED, RuntimeError("boom")]
        driver = BatchDriver(updater, user_concurrency=4)
        with pytest.raises(RuntimeError, match="boom"):
            await driver.process_batch([_event()])
        assert updater.apply.await_count == 2


class TestUserConcurrency:
    """用户并发更新"""

    async def test_concurrent_matches_sequential(self, store_group: StoreGroup, tmp_path):
        batch = [
            _event("T1", approvers=("bob", "carol", "dave")),
            _event("T2", submittedby="bob", approvers=("carol", "dave")),
            _event("T3", submittedby="carol", approvers=("bob",)),
            _event("T1", status="complete", approvers=("bob", "carol", "dave")),
        ]

        await _driver(store_group, user_concurrency=1).process_batch(batch)

        other = await create_store_group(str(tmp_path / "concurrent.db"))
        try:
            await _driver(other, user_concurrency=4).process_batch(batch)
            for user_id in ("alice", "bob", "carol", "dave"):
                assert await _view_body(other, user_id) == await _view_body(
                    store_group, user_id
                )
        finally:
            await other.conn.close()

    async def test_process_record_returns_outcome_per_user(self, store_group: StoreGroup):
        driver = _driver(store_group, user_concurrency=2)
        record = parse_task_record(_event(approvers=("bob", "carol")))
        outcomes = await driver.process_record(record)
        assert outcomes == {
            "alice": ViewUpdateOutcome.CREATED,
            "bob": ViewUpdateOutcome.CREATED,
            "carol": ViewUpdateOutcome.CREATED,
        }
        assert isinstance(await store_group.view_store.read_view("carol"), ViewFound)
