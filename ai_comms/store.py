"""
ConversationStore - per-agent conversation state for the UI side.

State only changes through the store's operations; subscribers are called
with the store after every change (and once on subscribe), which is how a
UI keeps its views current.
"""

import logging
import time
from typing import Callable, Optional

from pydantic import BaseModel, Field

from ai_comms.schema import AIMessage

logger = logging.getLogger(__name__)

Subscriber = Callable[["ConversationStore"], None]


class ConversationUsage(BaseModel):
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0


class ConversationState(BaseModel):
    """Message history and streaming progress for one agent."""
    agent_id: int
    messages: list[AIMessage] = []
    is_streaming: bool = False
    current_response: Optional[str] = None
    error: Optional[str] = None
    usage: ConversationUsage = Field(default_factory=ConversationUsage)


class ConversationStore:
    """Conversations keyed by agent id. Operations on unknown ids are no-ops."""

    def __init__(self):
        self.conversations: dict[int, ConversationState] = {}
        self.active_conversation: Optional[int] = None
        self.is_initialized: bool = False
        self.error: Optional[str] = None
        self._subscribers: list[Subscriber] = []

    # ─────────────────────────────────────────────────────────────────
    # SUBSCRIPTION
    # ─────────────────────────────────────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register callback; returns a function that unregisters it."""
        self._subscribers.append(callback)
        callback(self)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            callback(self)

    # ─────────────────────────────────────────────────────────────────
    # OPERATIONS
    # ─────────────────────────────────────────────────────────────────

    def initialize(self) -> None:
        self.is_initialized = True
        self.error = None
        self._notify()

    def set_error(self, error: Optional[str]) -> None:
        self.error = error
        self._notify()

    def create_conversation(self, agent_id: int) -> ConversationState:
        """Start an empty conversation for agent_id (replacing any existing one) and make it active."""
        conversation = ConversationState(agent_id=agent_id)
        self.conversations[agent_id] = conversation
        self.active_conversation = agent_id
        self._notify()
        return conversation

    def set_active_conversation(self, agent_id: Optional[int]) -> None:
        self.active_conversation = agent_id
        self._notify()

    def get_conversation(self, agent_id: int) -> Optional[ConversationState]:
        return self.conversations.get(agent_id)

    def add_message(self, agent_id: int, message: AIMessage) -> None:
        conversation = self.conversations.get(agent_id)
        if conversation is None:
            return
        conversation.messages.append(message)
        self._notify()

    def start_streaming(self, agent_id: int) -> None:
        conversation = self.conversations.get(agent_id)
        if conversation is None:
            return
        conversation.is_streaming = True
        conversation.current_response = ""
        conversation.error = None
        self._notify()

    def append_stream_content(self, agent_id: int, content: str) -> None:
        conversation = self.conversations.get(agent_id)
        if conversation is None:
            return
        conversation.current_response = (conversation.current_response or "") + content
        self._notify()

    def complete_streaming(self, agent_id: int, final_content: Optional[str] = None) -> None:
        """Turn the streamed text (or final_content) into an assistant message."""
        conversation = self.conversations.get(agent_id)
        if conversation is None:
            return
        response = final_content or conversation.current_response or ""
        if response:
            conversation.messages.append(
                AIMessage(
                    role="assistant",
                    content=response,
                    metadata={"timestamp": int(time.time() * 1000)},
                )
            )
        conversation.is_streaming = False
        conversation.current_response = None
        conversation.error = None
        self._notify()

    def set_streaming_error(self, agent_id: int, error: str) -> None:
        conversation = self.conversations.get(agent_id)
        if conversation is None:
            return
        conversation.is_streaming = False
        conversation.current_response = None
        conversation.error = error
        self._notify()

    def update_usage(self, agent_id: int, input_tokens: int, output_tokens: int) -> None:
        conversation = self.conversations.get(agent_id)
        if conversation is None:
            return
        conversation.usage.total_input_tokens += input_tokens
        conversation.usage.total_output_tokens += output_tokens
        conversation.usage.total_tokens += input_tokens + output_tokens
        self._notify()

    def delete_conversation(self, agent_id: int) -> None:
        self.conversations.pop(agent_id, None)
        if self.active_conversation == agent_id:
            self.active_conversation = None
        self._notify()

    def clear_all_conversations(self) -> None:
        self.conversations = {}
        self.active_conversation = None
        self._notify()

    def reset(self) -> None:
        """Back to the initial state. Subscribers stay registered."""
        self.conversations = {}
        self.active_conversation = None
        self.is_initialized = False
        self.error = None
        self._notify()

    # ─────────────────────────────────────────────────────────────────
    # DERIVED VIEWS
    # ─────────────────────────────────────────────────────────────────

    @property
    def active(self) -> Optional[ConversationState]:
        if self.active_conversation is None:
            return None
        return self.conversations.get(self.active_conversation)

    @property
    def conversations_list(self) -> list[ConversationState]:
        return list(self.conversations.values())

    @property
    def is_any_streaming(self) -> bool:
        return any(c.is_streaming for c in self.conversations.values())

    @property
    def total_usage(self) -> ConversationUsage:
        total = ConversationUsage()
        for conversation in self.conversations.values():
            total.total_input_tokens += conversation.usage.total_input_tokens
            total.total_output_tokens += conversation.usage.total_output_tokens
            total.total_tokens += conversation.usage.total_tokens
        return total
