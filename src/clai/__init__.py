"""
clai: Terminal AI Assistant with Sandboxed Tools

Usage:
    from clai import StreamingSession, ChatMessage, ToolApprovalEvent

    session = StreamingSession()
    turn = session.stream_chat([ChatMessage.user("What is in README.md?")], model="haiku")
    async for event in turn:
        if isinstance(event, ToolApprovalEvent):
            event.approve()
    print(turn.result.text)
"""

from clai.audit.audit_log import AuditLog
from clai.config import ClaiConfig, load_config
from clai.conversations import ConversationStore
from clai.core.events import (
    ApprovalChannel,
    TextDeltaEvent,
    ToolApprovalEvent,
    ToolDoneEvent,
    ToolStartEvent,
    WarningEvent,
)
from clai.core.models import (
    ChatMessage,
    ImageAttachment,
    StreamResult,
    TextSegment,
    TokenUsage,
    ToolPermission,
    ToolResult,
    ToolSegment,
)
from clai.engine.loop import ChatTurn, ToolRoundTripLoop, TurnState
from clai.exceptions import (
    ClaiError,
    ConfigurationError,
    MissingAPIKeyError,
    ProviderError,
    RateLimitError,
    TurnFailedError,
    UnknownModelError,
)
from clai.session import ClientFactory, StreamingSession
from clai.tools.executor import ToolExecutor, create_default_executor
from clai.tools.sandbox import PathSandbox

__version__ = "0.4.0"

__all__ = [
    # Main API
    "StreamingSession",
    "ClientFactory",
    "ChatTurn",
    "ToolRoundTripLoop",
    "TurnState",
    "__version__",
    # Models
    "ChatMessage",
    "ImageAttachment",
    "StreamResult",
    "TextSegment",
    "TokenUsage",
    "ToolPermission",
    "ToolResult",
    "ToolSegment",
    # Events
    "ApprovalChannel",
    "TextDeltaEvent",
    "ToolApprovalEvent",
    "ToolDoneEvent",
    "ToolStartEvent",
    "WarningEvent",
    # Tools
    "PathSandbox",
    "ToolExecutor",
    "create_default_executor",
    # Persistence and config
    "AuditLog",
    "ClaiConfig",
    "ConversationStore",
    "load_config",
    # Errors
    "ClaiError",
    "ConfigurationError",
    "MissingAPIKeyError",
    "ProviderError",
    "RateLimitError",
    "TurnFailedError",
    "UnknownModelError",
]
