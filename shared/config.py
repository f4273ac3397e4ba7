# shared/config.py
import os
from dataclasses import dataclass, field
from typing import Optional

def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes")

@dataclass(frozen=True)
class Settings:
    """Runtime settings read once from the environment at startup"""

    # Service
    host: str = "0.0.0.0"
    port: int = 8000
    mode: str = "manual"
    log_level: str = "INFO"
    json_logs: bool = True

    # Storage
    database_url: str = "postgresql://localhost:5432/operations_agent"
    redis_url: Optional[str] = None

    # Reasoning gateway
    anthropic_api_key: Optional[str] = None
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    gateway_timeout_seconds: float = 120.0

    # Safety limits
    daily_budget_usd: float = 10.0
    daily_token_limit: int = 500000
    max_tasks_per_hour: int = 10
    max_consecutive_errors: int = 3
    task_timeout_seconds: float = 300.0
    budget_timezone: str = "Europe/Paris"

    # Intervals
    task_check_interval_seconds: float = 60.0
    heartbeat_interval_seconds: float = 30.0
    task_batch_size: int = 5

    # Conversation
    max_tool_iterations: int = 15
    session_max_messages: int = 40

    # Event bus
    event_log_capacity: int = 100

    # Gated workflow
    workflow_budget_usd: float = 2.0
    workflow_alert_usd: float = 0.5
    workflow_security_mode: str = "read_only"

    # External systems
    commerce_store: Optional[str] = None
    commerce_access_token: Optional[str] = None
    commerce_api_version: str = "2024-10"
    repository_owner: Optional[str] = None
    repository_name: Optional[str] = None
    repository_branch: str = "main"
    repository_token: Optional[str] = None
    pushover_token: Optional[str] = None
    pushover_user: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    alert_email: Optional[str] = None
    dashboard_url: str = field(default="http://localhost:8000")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults"""
        defaults = cls()
        return cls(
            host=os.getenv("HOST", defaults.host),
            port=int(os.getenv("PORT", str(defaults.port))),
            mode=os.getenv("MODE", defaults.mode),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
            json_logs=_env_bool("JSON_LOGS", defaults.json_logs),
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            redis_url=os.getenv("REDIS_URL"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            model=os.getenv("MODEL", defaults.model),
            max_tokens=int(os.getenv("MAX_TOKENS", str(defaults.max_tokens))),
            gateway_timeout_seconds=float(os.getenv("GATEWAY_TIMEOUT_SECONDS", str(defaults.gateway_timeout_seconds))),
            daily_budget_usd=float(os.getenv("DAILY_BUDGET_USD", str(defaults.daily_budget_usd))),
            daily_token_limit=int(os.getenv("DAILY_TOKEN_LIMIT", str(defaults.daily_token_limit))),
            max_tasks_per_hour=int(os.getenv("MAX_TASKS_PER_HOUR", str(defaults.max_tasks_per_hour))),
            max_consecutive_errors=int(os.getenv("MAX_CONSECUTIVE_ERRORS", str(defaults.max_consecutive_errors))),
            task_timeout_seconds=float(os.getenv("TASK_TIMEOUT_SECONDS", str(defaults.task_timeout_seconds))),
            budget_timezone=os.getenv("BUDGET_TIMEZONE", defaults.budget_timezone),
            task_check_interval_seconds=float(os.getenv("TASK_CHECK_INTERVAL_SECONDS", str(defaults.task_check_interval_seconds))),
            heartbeat_interval_seconds=float(os.getenv("HEARTBEAT_INTERVAL_SECONDS", str(defaults.heartbeat_interval_seconds))),
            task_batch_size=int(os.getenv("TASK_BATCH_SIZE", str(defaults.task_batch_size))),
            max_tool_iterations=int(os.getenv("MAX_TOOL_ITERATIONS", str(defaults.max_tool_iterations))),
            session_max_messages=int(os.getenv("SESSION_MAX_MESSAGES", str(defaults.session_max_messages))),
            event_log_capacity=int(os.getenv("EVENT_LOG_CAPACITY", str(defaults.event_log_capacity))),
            workflow_budget_usd=float(os.getenv("WORKFLOW_BUDGET_USD", str(defaults.workflow_budget_usd))),
            workflow_alert_usd=float(os.getenv("WORKFLOW_ALERT_USD", str(defaults.workflow_alert_usd))),
            workflow_security_mode=os.getenv("WORKFLOW_SECURITY_MODE", defaults.workflow_security_mode),
            commerce_store=os.getenv("COMMERCE_STORE"),
            commerce_access_token=os.getenv("COMMERCE_ACCESS_TOKEN"),
            commerce_api_version=os.getenv("COMMERCE_API_VERSION", defaults.commerce_api_version),
            repository_owner=os.getenv("REPOSITORY_OWNER"),
            repository_name=os.getenv("REPOSITORY_NAME"),
            repository_branch=os.getenv("REPOSITORY_BRANCH", defaults.repository_branch),
            repository_token=os.getenv("REPOSITORY_TOKEN"),
            pushover_token=os.getenv("PUSHOVER_TOKEN"),
            pushover_user=os.getenv("PUSHOVER_USER"),
            smtp_host=os.getenv("SMTP_HOST"),
            smtp_port=int(os.getenv("SMTP_PORT", str(defaults.smtp_port))),
            smtp_user=os.getenv("SMTP_USER"),
            smtp_password=os.getenv("SMTP_PASSWORD"),
            alert_email=os.getenv("ALERT_EMAIL"),
            dashboard_url=os.getenv("DASHBOARD_URL", defaults.dashboard_url),
        )
