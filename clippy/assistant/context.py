"""Translate stored conversations into model context."""

from clippy.llm import Message as LLMMessage
from clippy.models import ASSISTANT_ROLE, SYSTEM_ROLE, USER_ROLE, Conversation


def build_context(system_prompt: str, conversation: Conversation) -> list[LLMMessage]:
    """Return a fresh model context: system prompt plus the user/assistant turns.

    The conversation is only read; callers may extend the returned list.
    """
    context = [LLMMessage(role=SYSTEM_ROLE, content=system_prompt)]
    for message in conversation.messages:
        if message.role not in (USER_ROLE, ASSISTANT_ROLE):
            continue
        context.append(LLMMessage(role=message.role, content=message.content))
    return context
