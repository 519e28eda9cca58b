"""Agent orchestration: run loop, tool execution and user confirmation."""

from opencowork.agent.confirmation import ConfirmationBroker, PendingConfirmation
from opencowork.agent.errors import AlreadyProcessing, describe_provider_error
from opencowork.agent.events import AgentEvent, EventBroadcaster, EventKind
from opencowork.agent.loop import AgentLoop, UserInput
from opencowork.agent.stream import StreamAssembler
from opencowork.agent.tools import ToolExecutor

__all__ = [
    "AgentEvent",
    "AgentLoop",
    "AlreadyProcessing",
    "ConfirmationBroker",
    "EventBroadcaster",
    "EventKind",
    "PendingConfirmation",
    "StreamAssembler",
    "ToolExecutor",
    "UserInput",
    "describe_provider_error",
]
