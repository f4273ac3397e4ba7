# application/services/conversation_loop.py
from typing import Dict, Any, Optional, List, Iterable, Tuple
import asyncio

from domain.models.conversation import (
    ConversationResult, ConversationSession, LoopOutcome, LoopState, ToolCall, Usage
)
from domain.models.tools import ToolResult
from shared.logging import logger

DEFAULT_MAX_ITERATIONS = 15

class ConversationLoop:
    """Bounded multi-turn exchange with the reasoning gateway.

    The loop alternates between AWAITING_REPLY (budget check, then one
    gateway call) and EXECUTING_TOOLS (every requested tool through the
    dispatcher) until the gateway answers in plain text, the budget denies
    the next call, or ``max_iterations`` gateway calls have been made.
    Usage of every completed call is recorded whatever the outcome, and the
    session is persisted on every exit path.
    """

    def __init__(self, gateway, dispatcher, budget, session_store,
                 max_iterations: int = DEFAULT_MAX_ITERATIONS):
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.budget = budget
        self.session_store = session_store
        self.max_iterations = max_iterations

    async def run(self, session_id: str, user_message: str, system_preamble: str,
                  tool_names: Optional[Iterable[str]] = None) -> ConversationResult:
        session = await self.session_store.load(session_id)
        session.append({"role": "user", "content": user_message})
        catalogue = self.dispatcher.catalogue(tool_names)

        state = LoopState.AWAITING_REPLY
        pending: Tuple[ToolCall, ...] = ()
        iterations = 0
        tool_calls_made = 0
        usage = Usage()
        last_text = ""
        result: Optional[ConversationResult] = None

        try:
            while state != LoopState.TERMINAL:
                if state == LoopState.AWAITING_REPLY:
                    if iterations >= self.max_iterations:
                        result = ConversationResult(
                            success=False, outcome=LoopOutcome.ITERATION_LIMIT, text=last_text,
                            iterations=iterations, usage=usage, tool_calls_made=tool_calls_made,
                            error=f"Tool loop did not finish within {self.max_iterations} iterations"
                        )
                        state = LoopState.TERMINAL
                        continue

                    self.budget.reset_if_new_day()
                    check = self.budget.check()
                    if not check.allowed:
                        result = ConversationResult(
                            success=False, outcome=LoopOutcome.BUDGET_EXCEEDED, text="",
                            iterations=iterations, usage=usage, tool_calls_made=tool_calls_made,
                            error=check.reason
                        )
                        state = LoopState.TERMINAL
                        continue

                    reply = await self.gateway.complete(system_preamble, session.messages, catalogue)
                    iterations += 1
                    usage = usage + reply.usage
                    await self.budget.record_usage(
                        reply.usage.input_tokens, reply.usage.output_tokens, reply.model
                    )

                    content = reply.assistant_content()
                    if content:
                        session.append({"role": "assistant", "content": content})
                    if reply.text:
                        last_text = reply.text

                    if reply.requests_tools:
                        pending = reply.tool_calls
                        state = LoopState.EXECUTING_TOOLS
                    else:
                        result = ConversationResult(
                            success=True, outcome=LoopOutcome.COMPLETED, text=reply.text,
                            iterations=iterations, usage=usage, tool_calls_made=tool_calls_made
                        )
                        state = LoopState.TERMINAL

                elif state == LoopState.EXECUTING_TOOLS:
                    results = await self._execute_tools(pending)
                    tool_calls_made += len(pending)
                    session.append({"role": "user", "content": self._tool_result_blocks(pending, results)})
                    pending = ()
                    state = LoopState.AWAITING_REPLY
        finally:
            await self._persist(session)

        logger.info("Conversation finished",
                   session_id=session_id,
                   outcome=result.outcome.value,
                   success=result.success,
                   iterations=iterations,
                   tool_calls=tool_calls_made,
                   input_tokens=usage.input_tokens,
                   output_tokens=usage.output_tokens)
        return result

    async def _execute_tools(self, calls: Tuple[ToolCall, ...]) -> List[ToolResult]:
        # Independent calls; gather keeps results in request order
        return list(await asyncio.gather(
            *(self.dispatcher.execute(call.name, call.input) for call in calls)
        ))

    @staticmethod
    def _tool_result_blocks(calls: Tuple[ToolCall, ...],
                            results: List[ToolResult]) -> List[Dict[str, Any]]:
        return [
            {
                "type": "tool_result",
                "tool_use_id": call.call_id,
                "content": result.to_content(),
                "is_error": result.is_error,
            }
            for call, result in zip(calls, results)
        ]

    async def _persist(self, session: ConversationSession):
        try:
            await self.session_store.save(session)
        except Exception as e:
            logger.error(f"Failed to persist session {session.session_id}: {e}")
