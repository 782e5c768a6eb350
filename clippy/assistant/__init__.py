"""Assistant capabilities: conversation titles and replies."""

from abc import ABC, abstractmethod

from clippy.assistant.reply_loop import DEFAULT_MAX_ROUND_TRIPS, LoopState, ReplyLoop
from clippy.assistant.title import TitleGenerator, clean_title
from clippy.instructions import InstructionLoader
from clippy.llm import LLMProvider
from clippy.models import Conversation
from clippy.tools.registry import ToolRegistry


class Assistant(ABC):
    """What the conversation service needs from the model side."""

    @abstractmethod
    async def title(self, conversation: Conversation) -> str:
        """Return a short label for the conversation."""

    @abstractmethod
    async def reply(self, conversation: Conversation) -> str:
        """Return the assistant's next message for the conversation."""


class ModelAssistant(Assistant):
    """Assistant backed by a model provider and a tool registry."""

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        max_round_trips: int = DEFAULT_MAX_ROUND_TRIPS,
        instructions: InstructionLoader | None = None,
    ):
        if max_round_trips < 1:
            raise ValueError("max_round_trips must be at least 1")
        self.provider = provider
        self.registry = registry
        self.max_round_trips = max_round_trips
        self.instructions = instructions or InstructionLoader()
        self._titles = TitleGenerator(provider, self.instructions)

    async def title(self, conversation: Conversation) -> str:
        return await self._titles.generate(conversation)

    async def reply(self, conversation: Conversation) -> str:
        loop = ReplyLoop(
            self.provider,
            self.registry,
            instructions=self.instructions,
            max_round_trips=self.max_round_trips,
        )
        return await loop.run(conversation)


__all__ = [
    "Assistant",
    "ModelAssistant",
    "ReplyLoop",
    "LoopState",
    "TitleGenerator",
    "clean_title",
    "DEFAULT_MAX_ROUND_TRIPS",
]
