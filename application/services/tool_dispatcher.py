# application/services/tool_dispatcher.py
from typing import Dict, Any, Optional, List, Iterable
from datetime import datetime

from pydantic import ValidationError

from domain.exceptions import ToolValidationError
from domain.models.tools import Tool, ToolResult, ToolOutcome
from domain.models.workflow import SecurityMode
from shared.logging import logger, log_tool_invocation, summarize_input

class ToolDispatcher:
    """Static tool registry; validates input and routes calls to executors.

    ``execute`` never raises. Every failure mode comes back as a ``ToolResult``
    whose outcome tells the reasoning gateway what went wrong.
    """

    def __init__(self, tools: Iterable[Tool] = (),
                 security_mode: SecurityMode = SecurityMode.READ_WRITE):
        self._tools: Dict[str, Tool] = {}
        self.security_mode = security_mode
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    @property
    def tool_names(self) -> List[str]:
        return sorted(self._tools)

    def catalogue(self, names: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """Tool definitions for the gateway, optionally limited to a subset"""
        selected = self._tools.values() if names is None else (
            self._tools[name] for name in names if name in self._tools
        )
        return [tool.definition() for tool in selected]

    async def execute(self, name: str, tool_input: Any) -> ToolResult:
        start_time = datetime.utcnow()
        input_summary = summarize_input(tool_input)

        tool = self._tools.get(name)
        if tool is None:
            result = ToolResult(name, ToolOutcome.UNKNOWN_TOOL, error=f"Unknown tool: {name}")
        elif tool.privileged and self.security_mode == SecurityMode.READ_ONLY:
            result = ToolResult(
                name, ToolOutcome.BLOCKED,
                error=f"BLOCKED - '{name}' writes to an external system and the dispatcher is read-only"
            )
        else:
            result = await self._invoke(tool, tool_input)

        duration_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)
        log_tool_invocation(
            tool_name=name,
            input_summary=input_summary,
            outcome=result.outcome.value,
            duration_ms=duration_ms,
            error_message=result.error
        )
        return result

    @staticmethod
    def validate_input(tool: Tool, tool_input: Any):
        """Parse raw input with the tool's model; raises ToolValidationError"""
        try:
            return tool.input_model.model_validate(tool_input if tool_input is not None else {})
        except ValidationError as e:
            errors = [
                {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            raise ToolValidationError(tool.name, errors) from e

    async def _invoke(self, tool: Tool, tool_input: Any) -> ToolResult:
        try:
            validated = self.validate_input(tool, tool_input)
        except ToolValidationError as e:
            return ToolResult(tool.name, ToolOutcome.VALIDATION_ERROR, error=str(e))

        try:
            output = await tool.executor(validated)
        except Exception as e:
            logger.warning("Tool executor raised", tool_name=tool.name, error=str(e))
            return ToolResult(tool.name, ToolOutcome.EXECUTION_ERROR, error=str(e) or type(e).__name__)

        if output is None:
            output = {}
        elif not isinstance(output, dict):
            output = {"result": output}
        return ToolResult(tool.name, ToolOutcome.OK, output=output)
