"""Tool definitions, invocations and results."""

from dataclasses import dataclass, field
from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional


class ToolDefinition(BaseModel):
    """Tool schema exposed to the LLM."""
    name: str = Field(..., description="Tool name the model calls")
    description: str = Field(..., description="Tool description")
    parameters_schema: Dict[str, Any] = Field(..., description="JSON Schema for parameters")


@dataclass(frozen=True)
class ToolInvocation:
    """One tool call requested by the model; id is the model's own identifier."""
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    """Output of one invocation. Only sanitized_text is ever shown to the model."""
    invocation_id: str
    raw_text: str
    sanitized_text: str
    is_error: bool = False


@dataclass
class LLMResponse:
    """One completion split into free-text blocks and tool invocation blocks."""
    text_blocks: List[str] = field(default_factory=list)
    tool_invocations: List[ToolInvocation] = field(default_factory=list)
    finish_reason: Optional[str] = None
    model: Optional[str] = None

    @property
    def text(self) -> str:
        return "\n".join(block for block in self.text_blocks if block)
