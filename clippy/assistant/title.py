"""Conversation title generation."""

import re

from clippy.assistant.context import build_context
from clippy.exceptions import EmptyReplyError, ModelUnavailableError
from clippy.instructions import InstructionLoader
from clippy.llm import LLMProvider
from clippy.logging import get_logger
from clippy.models import Conversation

log = get_logger(__name__)

MAX_TITLE_CHARS = 80

_PREFIX_RE = re.compile(r"^\s*title\s*:\s*", re.IGNORECASE)
_QUOTES = "\"'`“”‘’*"


def clean_title(raw: str, max_chars: int = MAX_TITLE_CHARS) -> str:
    """Reduce a model answer to a single-line label."""
    line = next((part.strip() for part in (raw or "").splitlines() if part.strip()), "")
    line = _PREFIX_RE.sub("", line).strip().strip(_QUOTES).strip()
    line = line.rstrip(".").strip()
    if len(line) <= max_chars:
        return line
    clipped = line[:max_chars].rsplit(" ", 1)[0].rstrip(" ,;:-")
    return clipped or line[:max_chars]


class TitleGenerator:
    """Single model call that labels a conversation; no tools."""

    def __init__(self, provider: LLMProvider, instructions: InstructionLoader | None = None):
        self.provider = provider
        self.instructions = instructions or InstructionLoader()

    async def generate(self, conversation: Conversation) -> str:
        context = build_context(self.instructions.load("title_system_prompt.md"), conversation)
        try:
            response = await self.provider.complete(messages=context, tools=None)
        except ModelUnavailableError:
            raise
        except Exception as e:
            raise ModelUnavailableError(f"Model call failed: {e}") from e

        title = clean_title(response.content)
        if not title:
            raise EmptyReplyError("Model returned an empty title")
        log.debug("Generated title", conversation_id=conversation.id, title=title)
        return title
