# main.py
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional
from datetime import datetime

from fastapi import FastAPI, HTTPException, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
import asyncpg

# Internal imports
from application.orchestrators.gated_workflow import GatedWorkflowEngine, WorkflowStepExecutor
from application.orchestrators.scheduler import Scheduler
from application.orchestrators.task_orchestrator import TaskOrchestrator
from application.services.alerts import AlertService
from application.services.budget_governor import BudgetGovernor
from application.services.conversation_loop import ConversationLoop
from application.services.event_bus import EventBus
from application.services.rate_limiter import RateLimiter
from application.services.tool_dispatcher import ToolDispatcher
from domain.exceptions import AgentRuntimeError, BudgetExceededError
from domain.models.events import Channel
from domain.models.task_state import TaskStatus
from domain.models.workflow import SecurityMode
from infrastructure.adapters.commerce_api import CommerceClient
from infrastructure.adapters.notifier import Notifier
from infrastructure.adapters.repository_api import RepositoryClient
from infrastructure.agents.capability_agents import build_agents
from infrastructure.gateway.reasoning_gateway import AnthropicGateway
from infrastructure.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from infrastructure.storage.event_log import InMemoryEventLog, RedisEventLog
from infrastructure.storage.session_store import PostgresSessionStore
from infrastructure.storage.task_store import PostgresTaskStore
from infrastructure.tools.catalogue import build_tools, build_task_tools
from infrastructure.web.dependencies import (
    app_state, to_http_exception, get_orchestrator, get_scheduler,
    get_budget_governor, get_rate_limiter, get_circuit_breaker, get_event_bus
)
from infrastructure.web.operations_api import router as operations_router
from infrastructure.web.workflow_api import router as workflow_router
from shared.config import Settings
from shared.logging import logger, setup_logging

__version__ = "1.0.0"

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""

    settings = Settings.from_env()
    setup_logging(level=settings.log_level, json_logs=settings.json_logs)

    # Startup
    logger.info("Starting operations agent", version=__version__, mode=settings.mode)

    try:
        db_pool = await asyncpg.create_pool(
            settings.database_url, min_size=2, max_size=10, command_timeout=60
        )
        app_state["db_pool"] = db_pool

        task_store = PostgresTaskStore(connection_pool=db_pool)
        await task_store.initialize()
        session_store = PostgresSessionStore(db_pool, settings.session_max_messages)

        if settings.redis_url:
            event_log = RedisEventLog(settings.redis_url, settings.event_log_capacity)
        else:
            event_log = InMemoryEventLog(settings.event_log_capacity)
        event_bus = EventBus(event_log)

        notifier = Notifier(
            pushover_token=settings.pushover_token,
            pushover_user=settings.pushover_user,
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            recipient=settings.alert_email
        )
        alerts = AlertService(event_bus, notifier)

        budget = BudgetGovernor(
            daily_budget_usd=settings.daily_budget_usd,
            daily_token_limit=settings.daily_token_limit,
            timezone=settings.budget_timezone,
            default_model=settings.model,
            db_pool=db_pool
        )
        await budget.initialize()

        circuit_breaker = CircuitBreaker(
            "task_execution",
            CircuitBreakerConfig(
                failure_threshold=settings.max_consecutive_errors,
                timeout_seconds=settings.task_timeout_seconds,
                ignored_exceptions=(BudgetExceededError,)
            ),
            db_pool
        )
        await circuit_breaker.initialize()
        circuit_breaker.add_trip_listener(alerts.on_circuit_trip)

        rate_limiter = RateLimiter(max_per_window=settings.max_tasks_per_hour)

        commerce = CommerceClient(settings.commerce_store, settings.commerce_access_token,
                                  settings.commerce_api_version)
        repository = RepositoryClient(settings.repository_owner, settings.repository_name,
                                      settings.repository_token, settings.repository_branch)
        gateway = AnthropicGateway(
            api_key=settings.anthropic_api_key,
            model=settings.model,
            max_tokens=settings.max_tokens,
            timeout_seconds=settings.gateway_timeout_seconds
        )

        dispatcher = ToolDispatcher(build_tools(commerce, repository, notifier))
        conversation_loop = ConversationLoop(
            gateway, dispatcher, budget, session_store,
            max_iterations=settings.max_tool_iterations
        )

        orchestrator = TaskOrchestrator(
            task_store=task_store,
            budget=budget,
            circuit_breaker=circuit_breaker,
            rate_limiter=rate_limiter,
            event_bus=event_bus,
            alerts=alerts,
            notifier=notifier,
            agents=build_agents(conversation_loop),
            batch_size=settings.task_batch_size,
            dashboard_url=settings.dashboard_url
        )
        for tool in build_task_tools(orchestrator):
            dispatcher.register(tool)

        scheduler = Scheduler(
            orchestrator, circuit_breaker, event_bus,
            task_check_interval=settings.task_check_interval_seconds,
            heartbeat_interval=settings.heartbeat_interval_seconds
        )

        # The workflow gets its own dispatcher so its security mode cannot leak to agents
        workflow_mode = SecurityMode(settings.workflow_security_mode)
        workflow_dispatcher = ToolDispatcher(build_tools(commerce, repository, notifier),
                                             security_mode=workflow_mode)
        workflow = GatedWorkflowEngine(
            WorkflowStepExecutor(workflow_dispatcher, conversation_loop),
            event_bus=event_bus,
            notifier=notifier,
            budget_usd=settings.workflow_budget_usd,
            alert_usd=settings.workflow_alert_usd,
            security_mode=workflow_mode
        )

        app_state.update({
            "settings": settings,
            "task_store": task_store,
            "event_bus": event_bus,
            "event_log": event_log,
            "notifier": notifier,
            "budget": budget,
            "circuit_breaker": circuit_breaker,
            "rate_limiter": rate_limiter,
            "commerce": commerce,
            "repository": repository,
            "gateway": gateway,
            "conversation_loop": conversation_loop,
            "orchestrator": orchestrator,
            "scheduler": scheduler,
            "workflow": workflow,
        })

        logger.info("Application initialized successfully", tools=dispatcher.tool_names)

        if settings.mode == "auto":
            await scheduler.start()

    except Exception as e:
        logger.error("Failed to initialize application", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("Shutting down operations agent")

    if "scheduler" in app_state:
        await app_state["scheduler"].stop(reason="shutdown")

    for name in ("gateway", "commerce", "repository", "notifier", "event_log"):
        if name in app_state:
            await app_state[name].close()

    if "db_pool" in app_state:
        await app_state["db_pool"].close()

# Create FastAPI app
app = FastAPI(
    title="Operations Agent",
    description="Autonomous operations agent with budget, rate and circuit-breaker safety gates",
    version=__version__,
    lifespan=lifespan
)

# Request models
class StartRequest(BaseModel):
    reset_circuit: bool = False

class SuggestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=200)
    task_type: str = Field(..., alias="type", min_length=1, max_length=50)
    description: str = Field(default="", max_length=5000)
    assignee: Optional[str] = None
    input_data: Dict[str, Any] = Field(default_factory=dict, alias="inputData")

class CreateTaskRequest(SuggestRequest):
    priority: int = Field(default=3, ge=1, le=10)
    can_create_subtasks: bool = False

# Control endpoints
@app.get("/health")
async def health_check(
    scheduler: Scheduler = Depends(get_scheduler),
    circuit_breaker: CircuitBreaker = Depends(get_circuit_breaker),
    budget: BudgetGovernor = Depends(get_budget_governor)
):
    """System health check"""

    try:
        database = "not_configured"
        if "db_pool" in app_state:
            async with app_state["db_pool"].acquire() as conn:
                await conn.fetchval("SELECT 1")
            database = "connected"

        circuit = await circuit_breaker.get_status()
        budget_status = budget.get_status()

        if circuit["tripped"]:
            health_status = "degraded"
        elif budget_status["budget_exceeded"]:
            health_status = "budget_exhausted"
        else:
            health_status = "healthy"

        return {
            "status": health_status,
            "running": scheduler.is_running,
            "database": database,
            "circuit_breaker": circuit,
            "budget": budget_status,
            "version": __version__,
            "timestamp": datetime.utcnow().isoformat()
        }

    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return {
            "status": "unhealthy",
            "error": str(e),
            "timestamp": datetime.utcnow().isoformat()
        }

@app.post("/start")
async def start_orchestrator(
    request: Optional[StartRequest] = None,
    scheduler: Scheduler = Depends(get_scheduler)
):
    """Start polling approved tasks; a tripped breaker needs reset_circuit=true"""

    try:
        return await scheduler.start(reset_circuit=bool(request and request.reset_circuit))
    except AgentRuntimeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to start orchestrator", error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to start orchestrator: {str(e)}")

@app.post("/stop")
async def stop_orchestrator(scheduler: Scheduler = Depends(get_scheduler)):
    """Stop picking up new tasks; a task in flight runs to completion"""
    return await scheduler.stop()

@app.get("/budget")
async def get_budget(
    budget: BudgetGovernor = Depends(get_budget_governor),
    rate_limiter: RateLimiter = Depends(get_rate_limiter)
):
    return {
        "daily": budget.get_status(),
        "task_suggestions": rate_limiter.get_status()
    }

@app.get("/agents")
async def get_agents(orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    return orchestrator.get_agents()

@app.post("/suggest")
async def suggest_task(
    request: SuggestRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Propose a task for human validation; refused when rate limited or duplicated"""

    try:
        task = await orchestrator.suggest_task(
            title=request.title,
            task_type=request.task_type,
            description=request.description,
            assignee=request.assignee,
            input_data=request.input_data
        )
        return task.to_dict()
    except AgentRuntimeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to suggest task", title=request.title, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to suggest task: {str(e)}")

@app.get("/tasks")
async def list_tasks(
    status: Optional[TaskStatus] = None,
    limit: int = Query(default=20, ge=1, le=100),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    try:
        tasks = await orchestrator.list_tasks(status, limit)
        return [task.to_dict() for task in tasks]
    except Exception as e:
        logger.error("Failed to list tasks", error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to list tasks: {str(e)}")

@app.post("/tasks")
async def create_task(
    request: CreateTaskRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Create a human-authored task in pending_validation"""

    try:
        task = await orchestrator.create_task(
            title=request.title,
            task_type=request.task_type,
            description=request.description,
            assignee=request.assignee,
            input_data=request.input_data,
            priority=request.priority,
            can_create_subtasks=request.can_create_subtasks
        )
        return task.to_dict()
    except AgentRuntimeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to create task", title=request.title, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to create task: {str(e)}")

@app.get("/tasks/{task_id}")
async def get_task(
    task_id: str,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    try:
        task = await orchestrator.get_task(task_id)
        return task.to_dict()
    except AgentRuntimeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to get task", task_id=task_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to get task: {str(e)}")

@app.post("/tasks/{task_id}/approve")
async def approve_task(
    task_id: str,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Human validation of a pending task"""

    try:
        task = await orchestrator.approve_task(task_id)
        return task.to_dict()
    except AgentRuntimeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to approve task", task_id=task_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to approve task: {str(e)}")

@app.get("/events/{channel}")
async def get_events(
    channel: Channel,
    count: int = Query(default=10, ge=1, le=100),
    event_bus: EventBus = Depends(get_event_bus)
):
    """Most recent events on a channel, newest first"""

    try:
        events = await event_bus.get_history(channel, count)
        return {
            "channel": channel.value,
            "count": len(events),
            "events": [event.to_dict() for event in events]
        }
    except Exception as e:
        logger.error("Failed to read events", channel=channel.value, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to read events: {str(e)}")

@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "service": "Operations Agent",
        "version": __version__,
        "description": "Polls approved tasks and runs them through tool-using agents under budget, rate and circuit-breaker limits",
        "features": [
            "Human-validated task lifecycle",
            "Bounded tool-calling conversation loop",
            "Daily cost and token budget",
            "Hourly task suggestion limit",
            "Circuit breaker with explicit restart",
            "Human-gated test workflow",
            "Per-channel event log",
            "Operator chat and daily briefing"
        ],
        "endpoints": {
            "health_check": "GET /health",
            "control": "POST /start, POST /stop",
            "budget": "GET /budget",
            "agents": "GET /agents",
            "suggest": "POST /suggest",
            "tasks": "GET|POST /tasks, GET /tasks/{task_id}, POST /tasks/{task_id}/approve",
            "events": "GET /events/{channel}",
            "chat": "POST /chat, GET /briefing",
            "commerce": "GET /kpis, POST /webhooks/commerce",
            "workflow": "/workflow/*"
        }
    }

# Include routers
app.include_router(operations_router)
app.include_router(workflow_router)

if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port
    )
