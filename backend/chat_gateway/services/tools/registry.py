"""Tool registry: name -> JSON-schema-declared async handler."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from chat_gateway.errors import ToolExecutionError
from chat_gateway.models.ir import ToolCallRequest, ToolResult

ToolHandler = Callable[[dict[str, Any]], Awaitable[str]]


@dataclass
class ToolDefinition:
    """A tool the model may call.

    Attributes:
        name: Tool name the model refers to
        description: What the tool does, shown to the model
        parameters: JSON schema of the arguments object
        handler: Coroutine taking decoded arguments and returning text
    """

    name: str
    description: str
    handler: ToolHandler
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_completions_schema(self) -> dict[str, Any]:
        """Function-tool declaration for the completions-style protocol."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def to_messages_schema(self) -> dict[str, Any]:
        """Tool declaration for the messages-style protocol."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }


class ToolRegistry:
    """Maps tool names to definitions and executes requested calls.

    Execution never raises: unknown tools, undecodable arguments and
    handler failures all become a ToolResult describing the failure, so the
    model can answer gracefully.
    """

    def __init__(self, tools: list[ToolDefinition] | None = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool {tool.name}")

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def completions_schemas(self) -> list[dict[str, Any]]:
        return [tool.to_completions_schema() for tool in self._tools.values()]

    def messages_schemas(self) -> list[dict[str, Any]]:
        return [tool.to_messages_schema() for tool in self._tools.values()]

    async def execute(self, call: ToolCallRequest) -> ToolResult:
        """Execute one tool call."""
        try:
            content = await self._run(call)
        except ToolExecutionError as e:
            logger.warning(f"Tool {e.tool} failed: {e.message}")
            content = f"The {e.tool} tool failed: {e.message}"
        except Exception as e:
            logger.opt(exception=e).warning(f"Tool {call.name} raised {type(e).__name__}")
            content = f"The {call.name} tool failed unexpectedly ({type(e).__name__})."
        return ToolResult(tool_call_id=call.id, content=content)

    async def execute_all(self, calls: list[ToolCallRequest]) -> list[ToolResult]:
        """Execute calls sequentially, in the order the model requested them."""
        results = []
        for call in calls:
            results.append(await self.execute(call))
        return results

    async def _run(self, call: ToolCallRequest) -> str:
        tool = self._tools.get(call.name)
        if tool is None:
            raise ToolExecutionError(f"unknown tool '{call.name}'", tool=call.name)
        try:
            arguments = call.arguments()
        except ValueError as e:
            raise ToolExecutionError(f"invalid arguments: {e}", tool=call.name)
        logger.info(f"Executing tool {call.name} (call {call.id})")
        return await tool.handler(arguments)
