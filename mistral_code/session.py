"""Session-scoped state: conversation history plus the plan/implementation mode."""

from dataclasses import dataclass, field
from enum import Enum

from .history import Conversation


class Mode(Enum):
    IMPLEMENTATION = "implementation"
    PLAN = "plan"


@dataclass
class SessionState:
    """Owned context for one interactive session.

    Passed explicitly to the command interpreter and the agent loop; nothing
    else holds a reference to it, so no locking is needed.
    """

    conversation: Conversation = field(default_factory=Conversation)
    mode: Mode = Mode.IMPLEMENTATION

    @property
    def plan_mode(self) -> bool:
        return self.mode is Mode.PLAN

    def enter_plan(self) -> None:
        self.mode = Mode.PLAN

    def approve(self) -> bool:
        """Leave plan mode. Returns False (and changes nothing) if not in plan mode."""
        if self.mode is not Mode.PLAN:
            return False
        self.mode = Mode.IMPLEMENTATION
        return True

    def clear(self) -> int:
        """Empty the history and force implementation mode."""
        self.mode = Mode.IMPLEMENTATION
        return self.conversation.clear()
