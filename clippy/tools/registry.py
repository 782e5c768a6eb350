"""Tool registry and base tool class."""

import asyncio
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError, model_validator

from clippy.exceptions import (
    InvalidToolArguments,
    ToolExecutionError,
    ToolTimeoutError,
    UnknownToolError,
)
from clippy.logging import get_logger

log = get_logger(__name__)

DEFAULT_TOOL_TIMEOUT_SECONDS = 5.0

# How long a cancelled handler gets to unwind before it is abandoned.
_CANCEL_GRACE_SECONDS = 0.1

ArgsT = TypeVar("ArgsT", bound=BaseModel)


class ToolResult(BaseModel):
    """Result from tool execution."""

    success: bool = True
    content: str = ""
    error: str | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self


class Tool(ABC):
    """Base class for all tools.

    A tool is stateless: it receives the raw JSON argument payload chosen by
    the model, decodes it against its own shape and answers with text.
    """

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}}

    @abstractmethod
    async def handle(self, raw_arguments: str) -> ToolResult:
        """Execute the tool.

        Args:
            raw_arguments: JSON object text produced by the model

        Returns:
            ToolResult with success status and content

        Raises:
            InvalidToolArguments if the payload does not decode
        """

    def get_definition(self) -> dict[str, Any]:
        """Get the tool definition for the model.

        Returns:
            OpenAI function-style definition
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    @staticmethod
    def parse_arguments(raw_arguments: str, model: type[ArgsT]) -> ArgsT:
        """Decode a raw argument payload into ``model``."""
        payload = (raw_arguments or "").strip() or "{}"
        try:
            return model.model_validate_json(payload)
        except ValidationError as e:
            raise InvalidToolArguments(str(e)) from e

    async def close(self) -> None:
        """Release resources held by the tool."""
        return None


class ToolRegistry:
    """Fixed set of tools keyed by name, with timeout-bounded dispatch.

    The mapping is built once and never changes, so concurrent reads need
    no locking.
    """

    def __init__(self, *tools: Tool, timeout_seconds: float = DEFAULT_TOOL_TIMEOUT_SECONDS):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        by_name: dict[str, Tool] = {}
        for tool in tools:
            if not tool.name:
                raise ValueError("Tool must have a name")
            if tool.name in by_name:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            log.debug("Registering tool", tool=tool.name)
            by_name[tool.name] = tool

        self._tools = MappingProxyType(by_name)
        self.timeout_seconds = float(timeout_seconds)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        """List registered tool names in registration order."""
        return list(self._tools.keys())

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            UnknownToolError if not found
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return tool

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get all tool definitions for the model."""
        return [tool.get_definition() for tool in self._tools.values()]

    @staticmethod
    async def _abandon_task(task: asyncio.Task[Any]) -> None:
        """Cancel task and give it a short grace period to unwind."""
        if task.done():
            return
        task.cancel()
        await asyncio.wait({task}, timeout=_CANCEL_GRACE_SECONDS)
        if task.done() and not task.cancelled() and task.exception() is not None:
            log.debug("Abandoned tool raised while unwinding", error=str(task.exception()))

    async def dispatch(self, name: str, raw_arguments: str) -> str:
        """Execute one tool call by name and return its text output.

        Raises:
            UnknownToolError if the name is not registered
            ToolTimeoutError if the handler exceeds the registry timeout
            ToolExecutionError if the handler fails or rejects its arguments
        """
        tool = self.get(name)

        log.info("Executing tool", tool=name)
        execute_task = asyncio.create_task(tool.handle(raw_arguments))
        try:
            done, _ = await asyncio.wait({execute_task}, timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            await self._abandon_task(execute_task)
            raise

        if execute_task not in done:
            await self._abandon_task(execute_task)
            log.warning("Tool timed out", tool=name, timeout=self.timeout_seconds)
            raise ToolTimeoutError(name, self.timeout_seconds)

        try:
            result = execute_task.result()
        except InvalidToolArguments as e:
            log.warning("Invalid tool arguments", tool=name, error=str(e))
            raise ToolExecutionError(name, "invalid arguments") from e
        except Exception as e:
            log.error("Tool execution failed", tool=name, error=str(e))
            raise ToolExecutionError(name, "tool failed") from e

        if not isinstance(result, ToolResult):
            raise ToolExecutionError(name, "tool returned an invalid result")
        if not result.success:
            log.warning("Tool reported failure", tool=name, error=result.error)
            raise ToolExecutionError(name, result.error or "tool failed")

        log.info("Tool executed", tool=name)
        return result.content

    async def close(self) -> None:
        """Close every registered tool."""
        for tool in self._tools.values():
            await tool.close()
