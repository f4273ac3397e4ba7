# infrastructure/web/dependencies.py
from typing import Dict, Any

from fastapi import HTTPException

from domain.exceptions import (
    AgentRuntimeError, BudgetExceededError, CircuitTrippedError, DuplicateTaskError,
    ExternalCallFailure, InvalidTransitionError, RateLimitedError, TaskNotFoundError,
    WorkflowStateError
)

# Global application state, filled by the lifespan handler in main.py
app_state: Dict[str, Any] = {}

ERROR_STATUS_CODES = {
    RateLimitedError: 429,
    DuplicateTaskError: 409,
    BudgetExceededError: 402,
    InvalidTransitionError: 409,
    WorkflowStateError: 409,
    CircuitTrippedError: 409,
    TaskNotFoundError: 404,
    ExternalCallFailure: 502,
}

def to_http_exception(error: AgentRuntimeError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))

# Dependency injection
async def get_orchestrator():
    return app_state["orchestrator"]

async def get_scheduler():
    return app_state["scheduler"]

async def get_budget_governor():
    return app_state["budget"]

async def get_rate_limiter():
    return app_state["rate_limiter"]

async def get_circuit_breaker():
    return app_state["circuit_breaker"]

async def get_event_bus():
    return app_state["event_bus"]

async def get_workflow_engine():
    return app_state["workflow"]

async def get_conversation_loop():
    return app_state["conversation_loop"]

async def get_commerce_client():
    return app_state["commerce"]
