"""
ChatBridge - drives a conversation turn from user input to the store.

Sends the conversation history through the service and folds what comes
back (streamed or not) into the ConversationStore. One turn per agent at a
time; an in-flight stream can be cancelled.
"""

import asyncio
import logging
import time
from contextlib import aclosing
from typing import Optional

from ai_comms.config import get_max_history_messages
from ai_comms.errors import AICommunicationError
from ai_comms.formatting import limit_conversation_history
from ai_comms.schema import AIMessage, CommunicationOptions, TokenUsage
from ai_comms.service import AICommunicationService
from ai_comms.store import ConversationStore

logger = logging.getLogger(__name__)


class ChatBridge:
    """Connects an AICommunicationService to a ConversationStore."""

    def __init__(
        self,
        service: AICommunicationService,
        store: ConversationStore,
        max_history_messages: Optional[int] = None,
    ):
        self.service = service
        self.store = store
        self.max_history_messages = max_history_messages or get_max_history_messages()
        self.current_agent: Optional[int] = None
        self._cancel_events: dict[int, asyncio.Event] = {}
        self._token_usage = {"input": 0, "output": 0, "total": 0}

    def set_active_agent(self, agent_id: Optional[int]) -> None:
        self.current_agent = agent_id
        if agent_id is not None:
            self.store.set_active_conversation(agent_id)

    def is_streaming(self, agent_id: Optional[int] = None) -> bool:
        agent_id = self.current_agent if agent_id is None else agent_id
        return agent_id in self._cancel_events

    async def send_message(
        self,
        content: str,
        use_streaming: bool = True,
        options: Optional[CommunicationOptions] = None,
    ) -> Optional[str]:
        """
        Run one turn for the active agent.

        Returns the assistant reply, or None when the turn failed (the
        reason is recorded in the store).
        """
        agent_id = self.current_agent
        if agent_id is None:
            self.store.set_error("No AI agent selected. Please select an agent first.")
            return None

        conversation = self.store.get_conversation(agent_id)
        if conversation is None:
            conversation = self.store.create_conversation(agent_id)
        if conversation.is_streaming or agent_id in self._cancel_events:
            self.store.set_error(f"Agent {agent_id} is still responding")
            return None

        self.store.add_message(
            agent_id,
            AIMessage(role="user", content=content, metadata={"timestamp": int(time.time() * 1000)}),
        )
        history = limit_conversation_history(conversation.messages, self.max_history_messages)

        if use_streaming:
            return await self._stream_turn(agent_id, history, options)
        return await self._send_turn(agent_id, history, options)

    def cancel(self, agent_id: Optional[int] = None) -> bool:
        """Abort the in-flight stream for agent_id (default: active agent)."""
        agent_id = self.current_agent if agent_id is None else agent_id
        cancel_event = self._cancel_events.get(agent_id)
        if cancel_event is None:
            return False
        logger.info("Cancelling stream for agent %s", agent_id)
        cancel_event.set()
        return True

    async def _send_turn(
        self,
        agent_id: int,
        history: list[AIMessage],
        options: Optional[CommunicationOptions],
    ) -> Optional[str]:
        try:
            response = await self.service.send_conversation(agent_id, history, options)
        except AICommunicationError as e:
            self.store.set_streaming_error(agent_id, f"AI Error: {e.message}")
            return None

        self.store.add_message(
            agent_id,
            AIMessage(
                role="assistant",
                content=response.content,
                metadata={"timestamp": int(time.time() * 1000)},
            ),
        )
        if response.usage:
            self._record_usage(agent_id, response.usage)
        return response.content

    async def _stream_turn(
        self,
        agent_id: int,
        history: list[AIMessage],
        options: Optional[CommunicationOptions],
    ) -> Optional[str]:
        cancel_event = asyncio.Event()
        self._cancel_events[agent_id] = cancel_event
        self.store.start_streaming(agent_id)

        try:
            events = self.service.stream_conversation(
                agent_id, history, options, cancel_event=cancel_event
            )
            async with aclosing(events):
                async for event in events:
                    if event.type == "chunk":
                        self.store.append_stream_content(agent_id, event.data or "")
                    elif event.type == "complete":
                        self.store.complete_streaming(agent_id, event.data)
                        if event.usage:
                            self._record_usage(agent_id, event.usage)
                        return event.data or ""
                    else:
                        message = getattr(event.error, "message", None) or str(event.error)
                        self.store.set_streaming_error(agent_id, f"AI Error: {message}")
                        return None

            self.store.set_streaming_error(agent_id, "AI Error: stream ended unexpectedly")
            return None
        finally:
            self._cancel_events.pop(agent_id, None)

    def _record_usage(self, agent_id: int, usage: TokenUsage) -> None:
        self.store.update_usage(agent_id, usage.input_tokens, usage.output_tokens)
        self._token_usage["input"] += usage.input_tokens
        self._token_usage["output"] += usage.output_tokens
        self._token_usage["total"] += usage.total_tokens

    def get_token_usage(self) -> dict[str, int]:
        return dict(self._token_usage)

    def reset_token_usage(self) -> None:
        self._token_usage = {"input": 0, "output": 0, "total": 0}
