# infrastructure/gateway/reasoning_gateway.py
from typing import Dict, Any, Optional, List

import anthropic

from domain.exceptions import ExternalCallFailure
from domain.models.conversation import GatewayReply, ToolCall, Usage, Message
from shared.logging import logger

class AnthropicGateway:
    """Reasoning gateway backed by the Anthropic Messages API.

    A call either returns a ``GatewayReply`` (text and/or tool-call requests
    plus usage counters) or raises ``ExternalCallFailure``.
    """

    def __init__(self, api_key: Optional[str] = None,
                 model: str = "claude-sonnet-4-20250514",
                 max_tokens: int = 4096,
                 timeout_seconds: float = 120.0,
                 client: Optional[anthropic.AsyncAnthropic] = None):
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0
        )

    async def complete(self, system: str, messages: List[Message],
                       tools: Optional[List[Dict[str, Any]]] = None) -> GatewayReply:
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": messages,
        }
        if tools:
            request["tools"] = tools

        try:
            response = await self.client.messages.create(**request)
        except anthropic.APIError as e:
            logger.error("Reasoning gateway call failed", model=self.model, error=str(e))
            raise ExternalCallFailure("reasoning_gateway", str(e)) from e

        text_parts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(call_id=block.id, name=block.name, input=dict(block.input or {})))

        usage = Usage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens
        )
        logger.debug("Reasoning gateway reply",
                    model=response.model,
                    stop_reason=response.stop_reason,
                    tool_calls=len(tool_calls),
                    input_tokens=usage.input_tokens,
                    output_tokens=usage.output_tokens)

        return GatewayReply(
            text="\n".join(text_parts),
            tool_calls=tuple(tool_calls),
            usage=usage,
            model=response.model,
            stop_reason=response.stop_reason
        )

    async def close(self):
        await self.client.close()
