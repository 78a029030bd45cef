"""Conversation history: role-tagged turns and their message-dict normalization."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import ClassVar, Union


def canonical_arguments(raw) -> str:
    """Return tool-call arguments as a JSON string.

    Providers send arguments either as an encoded string or as already
    decoded data; strings are kept verbatim so the model sees what it sent.
    """
    if isinstance(raw, str):
        return raw
    if raw is None:
        return "{}"
    return json.dumps(raw)


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: str

    def to_message(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(frozen=True)
class UserTurn:
    content: str
    role: ClassVar[str] = "user"

    def to_message(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class AssistantTurn:
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = field(default=())
    role: ClassVar[str] = "assistant"

    def to_message(self) -> dict:
        msg: dict = {"role": self.role, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = [tc.to_message() for tc in self.tool_calls]
        return msg


@dataclass(frozen=True)
class ToolTurn:
    tool_call_id: str
    content: str
    role: ClassVar[str] = "tool"

    def to_message(self) -> dict:
        return {
            "role": self.role,
            "tool_call_id": self.tool_call_id,
            "content": self.content,
        }


Turn = Union[UserTurn, AssistantTurn, ToolTurn]


class Conversation:
    """Insertion-ordered log of turns exchanged with the model.

    Turns are immutable once appended. The only ways to shrink the log are
    clear() and rollback().
    """

    def __init__(self):
        self._turns: list[Turn] = []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(self._turns)

    def __getitem__(self, index):
        return self._turns[index]

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def _pending_call_ids(self) -> set[str]:
        """Call ids of the latest assistant turn that have no tool result yet."""
        answered: set[str] = set()
        for turn in reversed(self._turns):
            if isinstance(turn, ToolTurn):
                answered.add(turn.tool_call_id)
                continue
            if isinstance(turn, AssistantTurn):
                return {tc.id for tc in turn.tool_calls} - answered
            break
        return set()

    def append(self, turn: Turn) -> None:
        """Append a turn. A tool turn must answer an open call of the preceding assistant turn."""
        if isinstance(turn, ToolTurn):
            if turn.tool_call_id not in self._pending_call_ids():
                raise ValueError(
                    f"tool result {turn.tool_call_id!r} does not answer an open tool call "
                    "of the preceding assistant turn"
                )
        elif not isinstance(turn, (UserTurn, AssistantTurn)):
            raise TypeError(f"not a turn: {turn!r}")
        self._turns.append(turn)

    def clear(self) -> int:
        """Drop every turn. Returns how many were removed."""
        dropped = len(self._turns)
        self._turns.clear()
        return dropped

    def rollback(self, mark: int) -> int:
        """Truncate back to `mark` turns. Returns how many were removed.

        The agent passes the length recorded before an exchange began, so a
        failed exchange drops its user turn together with any tool rounds it
        had already recorded and leaves no partial trace.
        """
        if mark < 0 or mark > len(self._turns):
            raise ValueError(f"rollback mark {mark} out of range")
        dropped = len(self._turns) - mark
        del self._turns[mark:]
        return dropped

    def to_messages(self) -> list[dict]:
        return [turn.to_message() for turn in self._turns]
