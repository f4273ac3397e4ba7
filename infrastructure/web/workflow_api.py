# infrastructure/web/workflow_api.py
from typing import Dict, Any

from fastapi import APIRouter, HTTPException, Depends

from application.orchestrators.gated_workflow import GatedWorkflowEngine
from domain.exceptions import AgentRuntimeError
from infrastructure.web.dependencies import get_workflow_engine, to_http_exception
from shared.logging import logger

router = APIRouter(prefix="/workflow", tags=["gated-workflow"])

@router.get("/status")
async def workflow_status(
    workflow: GatedWorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """Progress, current step, budget and step results of the active run"""
    return workflow.get_status()

@router.post("/start")
async def start_workflow(
    workflow: GatedWorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """Start the run; it advances until the first validation gate"""

    try:
        return await workflow.start()
    except AgentRuntimeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to start workflow", error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to start workflow: {str(e)}")

@router.post("/validate")
async def validate_step(
    workflow: GatedWorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """Approve the paused step and continue to the next gate"""

    try:
        return await workflow.validate()
    except AgentRuntimeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to validate workflow step", error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to validate step: {str(e)}")

@router.post("/reset")
async def reset_workflow(
    workflow: GatedWorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    return await workflow.reset()

@router.get("/budget")
async def workflow_budget(
    workflow: GatedWorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    return workflow.get_budget()
