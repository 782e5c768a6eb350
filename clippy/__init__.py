"""Clippy - conversational backend with a tool-calling assistant."""

__version__ = "0.1.0"

from clippy.config import Config
from clippy.chat import ConversationService

__all__ = ["Config", "ConversationService", "__version__"]
