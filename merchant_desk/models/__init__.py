from .message import InboundMessage, InboundMessageResponse
from .tenant import ChannelMapping, TenantContext
from .tool import ToolDefinition, ToolInvocation, ToolResult, LLMResponse
from .ledger import DateRange, LookupResult
from .transcript import AssistantTurn, ToolResultsTurn, Transcript, UserTurn

__all__ = [
    "InboundMessage",
    "InboundMessageResponse",
    "ChannelMapping",
    "TenantContext",
    "ToolDefinition",
    "ToolInvocation",
    "ToolResult",
    "LLMResponse",
    "DateRange",
    "LookupResult",
    "AssistantTurn",
    "ToolResultsTurn",
    "Transcript",
    "UserTurn",
]
