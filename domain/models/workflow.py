# domain/models/workflow.py
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Tuple
from enum import Enum
import uuid

class SecurityMode(Enum):
    READ_ONLY = "read_only"
    READ_WRITE = "read_write"

class ExternalAction(Enum):
    NONE = "none"
    READ = "read"
    WRITE = "write"

class StepType(Enum):
    CODE_GENERATION = "code_generation"
    CONTENT_GENERATION = "content_generation"
    COMMERCE_READ = "commerce_read"
    COMMERCE_WRITE = "commerce_write"
    NOTIFICATION = "notification"
    CLASSIFICATION_TEST = "classification_test"

class RunStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"

@dataclass(frozen=True)
class WorkflowStep:
    """Immutable step of a gated workflow"""
    step_id: str
    title: str
    token_cost: int
    requires_validation: bool = False
    step_type: StepType = StepType.CODE_GENERATION
    external_action: ExternalAction = ExternalAction.NONE
    description: str = ""
    validation_message: Optional[str] = None
    tool_name: Optional[str] = None
    tool_input: Optional[Dict[str, Any]] = None

    @property
    def performs_write(self) -> bool:
        return self.external_action == ExternalAction.WRITE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "title": self.title,
            "token_cost": self.token_cost,
            "requires_validation": self.requires_validation,
            "step_type": self.step_type.value,
            "external_action": self.external_action.value,
            "description": self.description,
        }

@dataclass(frozen=True)
class WorkflowDefinition:
    name: str
    steps: Tuple[WorkflowStep, ...]

    def __len__(self) -> int:
        return len(self.steps)

@dataclass(frozen=True)
class StepOutcome:
    step_id: str
    success: bool
    blocked: bool = False
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    cost_usd: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "success": self.success,
            "blocked": self.blocked,
            "output": self.output,
            "error": self.error,
            "cost_usd": round(self.cost_usd, 4),
        }

@dataclass
class WorkflowRun:
    """Mutable progress of the single active run; owned by the workflow engine"""
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    current_index: int = 0
    paused: bool = False
    started: bool = False
    completed: bool = False
    stopped_reason: Optional[str] = None
    budget_used_usd: float = 0.0
    results: List[StepOutcome] = field(default_factory=list)

    @property
    def status(self) -> RunStatus:
        if self.completed:
            return RunStatus.COMPLETED
        if self.stopped_reason:
            return RunStatus.STOPPED
        if self.paused:
            return RunStatus.PAUSED
        if self.started:
            return RunStatus.RUNNING
        return RunStatus.IDLE

DEFAULT_WORKFLOW = WorkflowDefinition(
    name="secure-integration-test",
    steps=(
        WorkflowStep(
            step_id="STEP_001",
            title="Generate commerce GraphQL client",
            token_cost=1500,
            description="Generate the GraphQL client module for the commerce API",
        ),
        WorkflowStep(
            step_id="STEP_002",
            title="Generate GraphQL queries",
            token_cost=2000,
            description="Generate product and order queries",
        ),
        WorkflowStep(
            step_id="STEP_003",
            title="Generate cache manager",
            token_cost=1000,
            description="Generate the response cache module",
        ),
        WorkflowStep(
            step_id="STEP_004",
            title="Read five products",
            token_cost=500,
            requires_validation=True,
            step_type=StepType.COMMERCE_READ,
            external_action=ExternalAction.READ,
            description="List products through the read-only commerce API",
            validation_message="Check the five products that were read. Nothing was modified.",
            tool_name="list_products",
            tool_input={"limit": 5},
        ),
        WorkflowStep(
            step_id="STEP_005",
            title="Generate catalogue worker",
            token_cost=2500,
            description="Generate the catalogue synchronisation worker",
        ),
        WorkflowStep(
            step_id="STEP_006",
            title="Generate one test product description",
            token_cost=1000,
            requires_validation=True,
            step_type=StepType.CONTENT_GENERATION,
            description="Write a description for one product without publishing it",
            validation_message="Review the generated description. Nothing was published.",
        ),
        WorkflowStep(
            step_id="STEP_007",
            title="Generate stock worker",
            token_cost=1500,
            description="Generate the stock monitoring worker",
        ),
        WorkflowStep(
            step_id="STEP_008",
            title="Send test stock alert",
            token_cost=300,
            requires_validation=True,
            step_type=StepType.NOTIFICATION,
            description="Send a test notification through push and email",
            validation_message="Confirm the test alert was received.",
            tool_name="send_notification",
            tool_input={"title": "Test stock alert", "message": "Workflow notification test", "priority": 0},
        ),
        WorkflowStep(
            step_id="STEP_009",
            title="Generate support classifier",
            token_cost=1500,
            description="Generate the customer support message classifier",
        ),
        WorkflowStep(
            step_id="STEP_010",
            title="Test support classification",
            token_cost=800,
            requires_validation=True,
            step_type=StepType.CLASSIFICATION_TEST,
            description="Classify five sample customer messages",
            validation_message="Workflow finished. No data was modified.",
        ),
    ),
)
