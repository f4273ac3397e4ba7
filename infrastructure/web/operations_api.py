# infrastructure/web/operations_api.py
from typing import Dict, Any, Optional
from datetime import datetime

from fastapi import APIRouter, HTTPException, Depends, Header
from pydantic import BaseModel, Field

from application.services.conversation_loop import ConversationLoop
from application.services.event_bus import EventBus
from domain.exceptions import AgentRuntimeError, BudgetExceededError
from domain.models.conversation import LoopOutcome
from domain.models.events import Channel
from infrastructure.adapters.commerce_api import CommerceClient
from infrastructure.tools.catalogue import CAPABILITY_TOOLS
from infrastructure.web.dependencies import (
    get_commerce_client, get_conversation_loop, get_event_bus, to_http_exception
)
from shared.logging import logger

router = APIRouter(tags=["operations"])

CHAT_PREAMBLE = (
    "You are the operations assistant of an online store. Answer the operator's "
    "questions using the read-only tools for real figures; never invent numbers. "
    "If something needs doing, propose it with suggest_task instead of acting."
)

BRIEFING_REQUEST = (
    "Give me today's briefing: key figures, alerts, priorities and recommendations."
)

# Read-only tools plus task suggestion
CHAT_TOOLS = CAPABILITY_TOOLS["analytical"]

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=10000)
    session_id: str = Field(default="chat", min_length=1, max_length=100)

async def _converse(conversation_loop: ConversationLoop, session_id: str,
                    message: str) -> Dict[str, Any]:
    result = await conversation_loop.run(
        session_id=session_id,
        user_message=message,
        system_preamble=CHAT_PREAMBLE,
        tool_names=CHAT_TOOLS
    )
    if result.outcome == LoopOutcome.BUDGET_EXCEEDED:
        raise BudgetExceededError(result.error or "Daily budget exhausted")
    return {"session_id": session_id, **result.to_dict()}

@router.post("/chat")
async def chat(
    request: ChatRequest,
    conversation_loop: ConversationLoop = Depends(get_conversation_loop)
) -> Dict[str, Any]:
    """Ask the assistant a question; history is kept per session_id"""

    try:
        return await _converse(conversation_loop, request.session_id, request.message)
    except AgentRuntimeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Chat failed", session_id=request.session_id, error=str(e))
        raise HTTPException(status_code=500, detail=f"Chat failed: {str(e)}")

@router.get("/briefing")
async def briefing(
    conversation_loop: ConversationLoop = Depends(get_conversation_loop)
) -> Dict[str, Any]:
    """Daily briefing, one session per calendar day"""

    session_id = f"briefing-{datetime.utcnow().date().isoformat()}"
    try:
        return await _converse(conversation_loop, session_id, BRIEFING_REQUEST)
    except AgentRuntimeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Briefing failed", error=str(e))
        raise HTTPException(status_code=500, detail=f"Briefing failed: {str(e)}")

@router.get("/kpis")
async def kpis(
    since: Optional[str] = None,
    commerce: CommerceClient = Depends(get_commerce_client)
) -> Dict[str, Any]:
    try:
        return await commerce.get_sales_kpis(since)
    except AgentRuntimeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to read KPIs", error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to read KPIs: {str(e)}")

@router.post("/webhooks/commerce")
async def commerce_webhook(
    x_shopify_topic: Optional[str] = Header(default=None),
    event_bus: EventBus = Depends(get_event_bus)
) -> Dict[str, Any]:
    """Store notifications (orders, inventory, products) relayed to the commerce channel"""

    topic = x_shopify_topic or "unknown"
    logger.info("Commerce webhook received", topic=topic)
    event = await event_bus.publish(Channel.COMMERCE, "webhook_received", {
        "topic": topic,
        "timestamp": datetime.utcnow().isoformat()
    }, source="commerce")
    return {"status": "ok", "event_id": event.event_id}
