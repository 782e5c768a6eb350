"""Conversation flow: start and continue conversations."""

import asyncio
from dataclasses import dataclass

from clippy.assistant import Assistant
from clippy.exceptions import InvalidArgumentError
from clippy.logging import get_logger
from clippy.models import ASSISTANT_ROLE, DEFAULT_TITLE, USER_ROLE, Conversation
from clippy.store import ConversationStore

log = get_logger(__name__)


@dataclass
class StartResult:
    conversation: Conversation
    reply: str


@dataclass
class ContinueResult:
    conversation: Conversation
    reply: str


def _require(value: str | None, argument: str) -> str:
    if not (value or "").strip():
        raise InvalidArgumentError(argument)
    return value


class ConversationService:
    """Runs the assistant for new and existing conversations.

    A conversation is only written once the reply succeeded, so a failed
    request leaves storage untouched.
    """

    def __init__(self, store: ConversationStore, assistant: Assistant):
        self.store = store
        self.assistant = assistant

    async def start_conversation(self, message: str) -> StartResult:
        """Create a conversation from its first user message.

        Title and reply are generated concurrently from the same initial
        state. A title failure keeps the default title; a reply failure
        cancels the title task and aborts the request.
        """
        _require(message, "message")
        conversation = Conversation.start(message)
        log.info("Starting conversation", conversation_id=conversation.id)

        try:
            async with asyncio.TaskGroup() as group:
                title_task = group.create_task(self._generate_title(conversation))
                reply_task = group.create_task(self.assistant.reply(conversation))
        except ExceptionGroup as group_error:
            # The title task never raises, so this is the reply failure.
            raise group_error.exceptions[0] from None

        reply = reply_task.result()
        conversation.title = title_task.result()
        conversation.add_message(ASSISTANT_ROLE, reply)

        await self.store.create(conversation)
        log.info(
            "Conversation started",
            conversation_id=conversation.id,
            title=conversation.title,
        )
        return StartResult(conversation=conversation, reply=reply)

    async def _generate_title(self, conversation: Conversation) -> str:
        try:
            return await self.assistant.title(conversation)
        except Exception as e:
            log.error(
                "Failed to generate conversation title",
                conversation_id=conversation.id,
                error=str(e),
            )
            return DEFAULT_TITLE

    async def continue_conversation(self, conversation_id: str, message: str) -> ContinueResult:
        """Append a user message to an existing conversation and reply to it."""
        _require(conversation_id, "conversation_id")
        _require(message, "message")

        conversation = await self.store.load(conversation_id)
        conversation.add_message(USER_ROLE, message)

        reply = await self.assistant.reply(conversation)
        conversation.add_message(ASSISTANT_ROLE, reply)

        await self.store.update(conversation)
        log.info(
            "Conversation continued",
            conversation_id=conversation.id,
            message_count=len(conversation.messages),
        )
        return ContinueResult(conversation=conversation, reply=reply)
