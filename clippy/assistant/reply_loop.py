"""Tool-calling reply loop."""

import asyncio
from datetime import date
from enum import Enum

from clippy.assistant.context import build_context
from clippy.exceptions import (
    EmptyReplyError,
    LoopBoundExceededError,
    ModelUnavailableError,
    ToolError,
)
from clippy.instructions import InstructionLoader
from clippy.llm import LLMProvider, LLMResponse, Message, ToolCall
from clippy.logging import get_logger
from clippy.models import ASSISTANT_ROLE, TOOL_ROLE, Conversation
from clippy.tools.registry import ToolRegistry

log = get_logger(__name__)

DEFAULT_MAX_ROUND_TRIPS = 5


class LoopState(str, Enum):
    DRAFTING = "drafting"
    AWAITING_TOOL_RESULTS = "awaiting_tool_results"
    DONE = "done"
    FAILED = "failed"


class ReplyLoop:
    """One reply generation: alternate model calls and tool dispatch.

    An instance drives a single run. It calls the model with the working
    context; tool calls requested in one response are dispatched together
    and their results appended before the next call. The run ends with the
    first non-empty final answer, or fails after ``max_round_trips`` model
    calls that all asked for tools.
    """

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        instructions: InstructionLoader | None = None,
        max_round_trips: int = DEFAULT_MAX_ROUND_TRIPS,
    ):
        if max_round_trips < 1:
            raise ValueError("max_round_trips must be at least 1")
        self.provider = provider
        self.registry = registry
        self.instructions = instructions or InstructionLoader()
        self.max_round_trips = max_round_trips
        self.state = LoopState.DRAFTING
        self.round_trips = 0

    def _set_state(self, state: LoopState) -> None:
        log.debug("Reply loop state", state=state.value, round_trip=self.round_trips)
        self.state = state

    async def run(self, conversation: Conversation) -> str:
        """Generate the assistant reply for ``conversation``.

        Raises:
            ModelUnavailableError if a model call fails
            EmptyReplyError if the final answer is blank
            LoopBoundExceededError if the model never stops calling tools
        """
        system_prompt = self.instructions.render(
            "reply_system_prompt.md",
            today=date.today().isoformat(),
        )
        context = build_context(system_prompt, conversation)
        tool_defs = self.registry.get_definitions() or None

        try:
            while self.round_trips < self.max_round_trips:
                self._set_state(LoopState.DRAFTING)
                response = await self._draft(context, tool_defs)

                if not response.tool_calls:
                    reply = (response.content or "").strip()
                    if not reply:
                        raise EmptyReplyError()
                    self._set_state(LoopState.DONE)
                    return reply

                if self.round_trips >= self.max_round_trips:
                    break

                self._set_state(LoopState.AWAITING_TOOL_RESULTS)
                context.append(Message(
                    role=ASSISTANT_ROLE,
                    content=response.content or "",
                    tool_calls=list(response.tool_calls),
                ))
                context.extend(await self._run_tool_calls(response.tool_calls))

            raise LoopBoundExceededError(self.max_round_trips)
        except Exception as e:
            self._set_state(LoopState.FAILED)
            log.error("Reply generation failed", error=str(e), round_trips=self.round_trips)
            raise

    async def _draft(self, context: list[Message], tool_defs: list[dict] | None) -> LLMResponse:
        self.round_trips += 1
        log.info("Calling model", round_trip=self.round_trips, message_count=len(context))
        try:
            return await self.provider.complete(messages=list(context), tools=tool_defs)
        except ModelUnavailableError:
            raise
        except Exception as e:
            raise ModelUnavailableError(f"Model call failed: {e}") from e

    async def _run_tool_calls(self, tool_calls: list[ToolCall]) -> list[Message]:
        """Dispatch one turn's tool calls concurrently; results keep request order."""
        log.info("Tool calls requested", count=len(tool_calls), tools=[tc.name for tc in tool_calls])
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(self._run_tool_call(tc)) for tc in tool_calls]
        return [task.result() for task in tasks]

    async def _run_tool_call(self, tool_call: ToolCall) -> Message:
        try:
            output = await self.registry.dispatch(tool_call.name, tool_call.arguments)
        except ToolError as e:
            output = f"Error: {e}"
        return Message(
            role=TOOL_ROLE,
            content=output,
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
        )
