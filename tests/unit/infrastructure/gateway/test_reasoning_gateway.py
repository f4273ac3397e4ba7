# tests/unit/infrastructure/gateway/test_reasoning_gateway.py
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from domain.exceptions import ExternalCallFailure
from infrastructure.gateway.reasoning_gateway import AnthropicGateway

def fake_client(response=None, error=None):
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=response, side_effect=error)
    client.close = AsyncMock()
    return client

def fake_response(*blocks, input_tokens=200, output_tokens=80, stop_reason="end_turn"):
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
        model="claude-sonnet-4-20250514",
        stop_reason=stop_reason
    )

class TestAnthropicGateway:

    @pytest.mark.asyncio
    async def test_text_reply(self):
        client = fake_client(fake_response(SimpleNamespace(type="text", text="Sales are up 12%")))
        gateway = AnthropicGateway(client=client)

        reply = await gateway.complete("preamble", [{"role": "user", "content": "hi"}])

        assert reply.text == "Sales are up 12%"
        assert not reply.requests_tools
        assert reply.usage.input_tokens == 200
        assert reply.usage.output_tokens == 80
        assert "tools" not in client.messages.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_tool_use_reply(self):
        client = fake_client(fake_response(
            SimpleNamespace(type="text", text="Let me check"),
            SimpleNamespace(type="tool_use", id="toolu_1", name="list_products", input={"limit": 5}),
            stop_reason="tool_use"
        ))
        gateway = AnthropicGateway(client=client, max_tokens=1024)
        tools = [{"name": "list_products", "description": "List", "input_schema": {"type": "object"}}]

        reply = await gateway.complete("preamble", [], tools)

        assert reply.requests_tools
        call = reply.tool_calls[0]
        assert (call.call_id, call.name, call.input) == ("toolu_1", "list_products", {"limit": 5})
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["tools"] == tools
        assert kwargs["max_tokens"] == 1024
        assert kwargs["system"] == "preamble"

    @pytest.mark.asyncio
    async def test_api_error_becomes_external_failure(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client = fake_client(error=anthropic.APIConnectionError(request=request))
        gateway = AnthropicGateway(client=client)

        with pytest.raises(ExternalCallFailure) as exc_info:
            await gateway.complete("preamble", [])

        assert exc_info.value.system == "reasoning_gateway"
