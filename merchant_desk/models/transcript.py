"""Provider-neutral conversation transcript owned by one reasoning loop."""

from dataclasses import dataclass, field
from typing import List, Tuple, Union

from .tool import ToolInvocation, ToolResult


@dataclass(frozen=True)
class UserTurn:
    text: str


@dataclass(frozen=True)
class AssistantTurn:
    """Assistant output replayed verbatim, tool invocation ids included."""
    text: str = ""
    tool_invocations: Tuple[ToolInvocation, ...] = ()


@dataclass(frozen=True)
class ToolResultsTurn:
    """One result per invocation of the preceding assistant turn."""
    results: Tuple[ToolResult, ...] = ()


Turn = Union[UserTurn, AssistantTurn, ToolResultsTurn]


@dataclass
class Transcript:
    turns: List[Turn] = field(default_factory=list)

    def append(self, turn: Turn) -> None:
        self.turns.append(turn)

    def __iter__(self):
        return iter(self.turns)

    def __len__(self) -> int:
        return len(self.turns)
