"""AI agent: tool catalog, intent resolution and tool execution."""

from .catalog import TOOL_CATALOG, TOOL_NAMES, ToolSpec
from .executor import ActionExecutor, ToolParameterError, bind_parameters
from .orchestrator import AgentOrchestrator
from .resolver import IntentResolver, conversation_action

__all__ = [
    "ActionExecutor",
    "AgentOrchestrator",
    "IntentResolver",
    "TOOL_CATALOG",
    "TOOL_NAMES",
    "ToolParameterError",
    "ToolSpec",
    "bind_parameters",
    "conversation_action",
]
