"""State management modules."""

from .conversation import ConversationHistory, Role, Turn

__all__ = ["ConversationHistory", "Role", "Turn"]
