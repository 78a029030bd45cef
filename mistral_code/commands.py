"""REPL command interpreter.

interpret() turns one input line into an Action without touching any state;
execute() applies the Action to a SessionState and hands chat messages to
the agent loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union, assert_never

from . import fmt
from .session import SessionState

APPROVAL_PHRASES = frozenset(
    {"/approve", "approve", "yes", "yes, implement", "yes implement"}
)

APPROVED_PLAN_MESSAGE = "Please implement the previously agreed plan."

HELP_TEXT = """
Available commands:
  - Type any message to chat with the agent
  - '/plan [message]' - Enter plan mode (read-only, creates a step-by-step plan)
  - '/approve'        - Approve the plan and start implementation
  - 'clear'           - Clear conversation history (also leaves plan mode)
  - 'help'            - Show this help message
  - 'exit' or 'quit'  - Exit the CLI
"""


@dataclass(frozen=True)
class Exit:
    pass


@dataclass(frozen=True)
class ClearHistory:
    pass


@dataclass(frozen=True)
class ShowHelp:
    pass


@dataclass(frozen=True)
class NoOp:
    pass


@dataclass(frozen=True)
class EnterPlan:
    message: str | None = None


@dataclass(frozen=True)
class Approve:
    pass


@dataclass(frozen=True)
class Chat:
    message: str


Action = Union[Exit, ClearHistory, ShowHelp, NoOp, EnterPlan, Approve, Chat]


def is_approval(text: str) -> bool:
    lowered = text.strip().lower()
    return lowered in APPROVAL_PHRASES or lowered.startswith("/approve")


def interpret(line: str) -> Action:
    """Classify an input line. Earlier rules win."""
    trimmed = line.strip()

    if trimmed in ("exit", "quit"):
        return Exit()
    if trimmed == "clear":
        return ClearHistory()
    if trimmed == "help":
        return ShowHelp()
    if not trimmed:
        return NoOp()
    if trimmed.startswith("/plan"):
        message = trimmed[len("/plan") :].strip()
        return EnterPlan(message or None)
    if is_approval(trimmed):
        return Approve()
    return Chat(trimmed)


def execute(
    action: Action,
    state: SessionState,
    run_chat: Callable[[SessionState, str], object],
) -> bool:
    """Apply an action to the session. Returns False when the session should end."""
    if isinstance(action, Exit):
        fmt.goodbye()
        return False
    elif isinstance(action, ClearHistory):
        state.clear()
        fmt.success("Conversation history cleared.")
    elif isinstance(action, ShowHelp):
        fmt.help_text(HELP_TEXT)
    elif isinstance(action, NoOp):
        pass
    elif isinstance(action, EnterPlan):
        state.enter_plan()
        fmt.plan_enabled()
        if action.message:
            run_chat(state, action.message)
    elif isinstance(action, Approve):
        if state.approve():
            fmt.plan_approved()
            run_chat(state, APPROVED_PLAN_MESSAGE)
        else:
            fmt.not_in_plan_mode()
    elif isinstance(action, Chat):
        if state.plan_mode:
            fmt.plan_reminder()
        run_chat(state, action.message)
    else:
        assert_never(action)
    return True


def process_line(
    line: str,
    state: SessionState,
    run_chat: Callable[[SessionState, str], object],
) -> bool:
    """Interpret and execute one input line."""
    return execute(interpret(line), state, run_chat)
