"""Session-scoped conversation log."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple


class Role(Enum):
    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class Turn:
    """One entry in the visible conversation."""

    role: Role
    text: str


class ConversationHistory:
    """
    Append-only log of user/model turns for a single chat session.

    A run appends its user turn first, then works against
    ``snapshot_prior_turns()`` and finally appends exactly one model turn.
    Nothing is persisted; the log lives as long as the session object.
    """

    def __init__(self) -> None:
        self._turns: List[Turn] = []
        self._pending_user_index: Optional[int] = None

    @property
    def turns(self) -> Tuple[Turn, ...]:
        """Read-only view of the log for rendering."""
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def append_user(self, text: str) -> Turn:
        """Record the user's submission; it is never rolled back."""
        if self._pending_user_index is not None:
            raise ValueError("Previous user turn is still awaiting a model turn")
        turn = Turn(Role.USER, text)
        self._pending_user_index = len(self._turns)
        self._turns.append(turn)
        return turn

    def append_model(self, text: str) -> Turn:
        """Record the single model turn that answers the pending user turn."""
        if self._pending_user_index is None:
            raise ValueError("No user turn awaiting a model turn")
        turn = Turn(Role.MODEL, text)
        self._turns.append(turn)
        self._pending_user_index = None
        return turn

    def snapshot_prior_turns(self) -> Tuple[Turn, ...]:
        """Turns as they stood right before the pending user turn was appended."""
        if self._pending_user_index is None:
            return tuple(self._turns)
        return tuple(self._turns[: self._pending_user_index])

    def clear(self) -> None:
        self._turns.clear()
        self._pending_user_index = None
