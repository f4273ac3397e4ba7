# shared/logging.py
import structlog
import logging
import sys
from typing import Any, Dict, Optional

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Get logger instance
logger = structlog.get_logger()

# Configure standard library logging
logging.basicConfig(
    format="%(message)s",
    stream=sys.stdout,
    level=logging.INFO,
)

INPUT_SUMMARY_LIMIT = 200

def setup_logging(level: str = "INFO", json_logs: bool = True):
    """Setup logging configuration"""
    log_level = getattr(logging, level.upper())
    logging.getLogger().setLevel(log_level)

    if not json_logs:
        # Human-readable format for development
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.dev.ConsoleRenderer()
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

def summarize_input(data: Any, limit: int = INPUT_SUMMARY_LIMIT) -> str:
    """Render tool input as a single truncated line for audit logs"""
    text = data if isinstance(data, str) else repr(data)
    text = " ".join(text.split())
    if len(text) > limit:
        return text[:limit - 3] + "..."
    return text

def log_task_execution(
    capability: str,
    task_id: str,
    execution_time_ms: int,
    success: bool,
    iterations: Optional[int] = None,
    error_message: Optional[str] = None
):
    """Log task execution metrics"""
    extra_data = {
        "capability": capability,
        "task_id": task_id,
        "execution_time_ms": execution_time_ms,
        "success": success
    }

    if iterations is not None:
        extra_data["iterations"] = iterations

    if error_message:
        extra_data["error_message"] = error_message
        logger.error("Task execution failed", **extra_data)
    else:
        logger.info("Task execution completed", **extra_data)

def log_circuit_breaker_event(
    breaker_name: str,
    event_type: str,
    tripped: bool,
    consecutive_errors: int,
    additional_context: Optional[Dict[str, Any]] = None
):
    """Log circuit breaker state changes"""
    extra_data = {
        "breaker_name": breaker_name,
        "event_type": event_type,
        "tripped": tripped,
        "consecutive_errors": consecutive_errors
    }

    if additional_context:
        extra_data.update(additional_context)

    if tripped:
        logger.error("Circuit breaker event", **extra_data)
    else:
        logger.info("Circuit breaker event", **extra_data)

def log_tool_invocation(
    tool_name: str,
    input_summary: str,
    outcome: str,
    duration_ms: int,
    error_message: Optional[str] = None
):
    """Audit trail entry for every dispatched tool call"""
    logger.info("Tool invocation",
               tool_name=tool_name,
               input_summary=input_summary,
               outcome=outcome,
               duration_ms=duration_ms,
               error=error_message)

def log_validation_request(
    workflow_step: str,
    title: str,
    budget_used_usd: float,
    message: Optional[str] = None
):
    """Log workflow pauses awaiting human validation"""
    logger.info("Validation requested",
               workflow_step=workflow_step,
               title=title,
               budget_used_usd=round(budget_used_usd, 4),
               message=message)

def log_budget_usage(
    date: str,
    tokens_consumed: int,
    cost_usd: float,
    total_cost_usd: float,
    remaining_usd: float,
    budget_exceeded: bool
):
    """Log token usage tracking"""
    logger.info("Budget usage",
               date=date,
               tokens_consumed=tokens_consumed,
               cost_usd=round(cost_usd, 6),
               total_cost_usd=round(total_cost_usd, 6),
               remaining_usd=round(remaining_usd, 6),
               budget_exceeded=budget_exceeded)
