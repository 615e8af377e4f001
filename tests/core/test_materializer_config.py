"""配置加载测试 -- 环境变量覆盖与非法值回退"""

import pytest
from taskview.core.config import (
    MaterializerConfig,
    RetryPolicy,
    get_completed_task_ttl_s,
    get_db_path,
    load_materializer_config,
)

ENV_VARS = [
    "TASKVIEW_VIEW_MAX_ATTEMPTS",
    "TASKVIEW_VIEW_RETRY_BASE_DELAY_MS",
    "TASKVIEW_VIEW_RETRY_MAX_DELAY_MS",
    "TASKVIEW_USER_CONCURRENCY",
    "TASKVIEW_FEED_BATCH_SIZE",
    "TASKVIEW_FEED_POLL_INTERVAL_S",
    "TASKVIEW_FEED_ENABLED",
    "TASKVIEW_COMPLETED_TASK_TTL_S",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadMaterializerConfig:
    """物化器配置测试"""

    def test_defaults(self):
        config = load_materializer_config()
        assert config == MaterializerConfig()
        assert config.retry == RetryPolicy()
        assert config.feed_enabled is True

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TASKVIEW_VIEW_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("TASKVIEW_VIEW_RETRY_BASE_DELAY_MS", "10")
        monkeypatch.setenv("TASKVIEW_VIEW_RETRY_MAX_DELAY_MS", "200")
        monkeypatch.setenv("TASKVIEW_USER_CONCURRENCY", "8")
        monkeypatch.setenv("TASKVIEW_FEED_BATCH_SIZE", "25")
        monkeypatch.setenv("TASKVIEW_FEED_POLL_INTERVAL_S", "0.5")

        config = load_materializer_config()

        assert config.retry.max_attempts == 5
        assert config.retry.base_delay_s == pytest.approx(0.01)
        assert config.retry.max_delay_s == pytest.approx(0.2)
        assert config.user_concurrency == 8
        assert config.feed_batch_size == 25
        assert config.feed_poll_interval_s == pytest.approx(0.5)

    def test_zero_attempts_means_unbounded(self, monkeypatch):
        monkeypatch.setenv("TASKVIEW_VIEW_MAX_ATTEMPTS", "0")
        assert load_materializer_config().retry.max_attempts is None

    def test_invalid_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("TASKVIEW_VIEW_MAX_ATTEMPTS", "many")
        monkeypatch.setenv("TASKVIEW_FEED_POLL_INTERVAL_S", "soon")
        config = load_materializer_config()
        assert config.retry.max_attempts == 20
        assert config.feed_poll_interval_s == 1.0

    def test_out_of_range_values_clamped(self, monkeypatch):
        monkeypatch.setenv("TASKVIEW_USER_CONCURRENCY", "0")
        monkeypatch.setenv("TASKVIEW_FEED_BATCH_SIZE", "-3")
        monkeypatch.setenv("TASKVIEW_VIEW_RETRY_BASE_DELAY_MS", "-1")
        config = load_materializer_config()
        assert config.user_concurrency == 1
        assert config.feed_batch_size == 1
        assert config.retry.base_delay_s == 0.0

    @pytest.mark.parametrize("value", ["false", "0", "no", "FALSE"])
    def test_feed_disabled(self, monkeypatch, value):
        monkeypatch.setenv("TASKVIEW_FEED_ENABLED", value)
        assert load_materializer_config().feed_enabled is False


class TestCompletedTaskTtl:
    """完成任务 ttl 配置测试"""

    def test_default(self):
        assert get_completed_task_ttl_s() == 300

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("TASKVIEW_COMPLETED_TASK_TTL_S", "60")
        assert get_completed_task_ttl_s() == 60

    def test_invalid_value_falls_back(self, monkeypatch):
        monkeypatch.setenv("TASKVIEW_COMPLETED_TASK_TTL_S", "5m")
        assert get_completed_task_ttl_s() == 300

    def test_negative_value_clamped(self, monkeypatch):
        monkeypatch.setenv("TASKVIEW_COMPLETED_TASK_TTL_S", "-10")
        assert get_completed_task_ttl_s() == 0


class TestDbPath:
    """数据库路径测试"""

    def test_explicit_db_path(self, monkeypatch):
        monkeypatch.setenv("TASKVIEW_DB_PATH", "/tmp/x.db")
        assert get_db_path() == "/tmp/x.db"

    def test_db_path_under_data_dir(self, monkeypatch, tmp_path):
        monkeypatch.delenv("TASKVIEW_DB_PATH", raising=False)
        monkeypatch.setenv("TASKVIEW_DATA_DIR", str(tmp_path))
        assert get_db_path() == str(tmp_path / "sqlite" / "taskview.db")
