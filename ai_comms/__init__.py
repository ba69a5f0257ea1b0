"""
ai-comms: provider-agnostic communication with AI agents.

Typical wiring at the application's composition root:

    manager = AICommunicationManager()
    service = AICommunicationService(records, manager)
    bridge = ChatBridge(service, ConversationStore())
"""

from ai_comms.bridge import ChatBridge
from ai_comms.config import Agent, AgentContext, Model, Provider
from ai_comms.errors import (
    AICommunicationError,
    ConfigurationError,
    ProviderError,
    StreamCancelledError,
)
from ai_comms.manager import AICommunicationManager
from ai_comms.records import FileRecordSource, RecordSource, StaticRecordSource
from ai_comms.schema import (
    AIMessage,
    AIResponse,
    CommunicationOptions,
    StreamEvent,
    TokenUsage,
)
from ai_comms.service import AICommunicationService
from ai_comms.store import ConversationState, ConversationStore

__all__ = [
    "AICommunicationError",
    "AICommunicationManager",
    "AICommunicationService",
    "AIMessage",
    "AIResponse",
    "Agent",
    "AgentContext",
    "ChatBridge",
    "CommunicationOptions",
    "ConfigurationError",
    "ConversationState",
    "ConversationStore",
    "FileRecordSource",
    "Model",
    "Provider",
    "ProviderError",
    "RecordSource",
    "StaticRecordSource",
    "StreamCancelledError",
    "StreamEvent",
    "TokenUsage",
]
