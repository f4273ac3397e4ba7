# tests/unit/shared/test_config.py
from shared.config import Settings

class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("DAILY_BUDGET_USD", "MAX_TASKS_PER_HOUR", "MODE", "WORKFLOW_SECURITY_MODE"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.daily_budget_usd == 10.0
        assert settings.daily_token_limit == 500000
        assert settings.max_tasks_per_hour == 10
        assert settings.max_consecutive_errors == 3
        assert settings.max_tool_iterations == 15
        assert settings.event_log_capacity == 100
        assert settings.workflow_security_mode == "read_only"
        assert settings.mode == "manual"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DAILY_BUDGET_USD", "2.5")
        monkeypatch.setenv("MAX_TASKS_PER_HOUR", "3")
        monkeypatch.setenv("JSON_LOGS", "false")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")

        settings = Settings.from_env()

        assert settings.daily_budget_usd == 2.5
        assert settings.max_tasks_per_hour == 3
        assert settings.json_logs is False
        assert settings.redis_url == "redis://cache:6379/0"
