"""
AICommunicationService - the façade the rest of the application talks to.

Resolves an agent id into a full AgentContext on every call (no caching, so
record edits apply immediately), delegates to the manager, and hands callers
a single error type: AICommunicationError.
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Optional

from ai_comms.config import AgentContext
from ai_comms.errors import (
    AICommunicationError,
    ConfigurationError,
    RecordNotFoundError,
    normalize_error,
)
from ai_comms.manager import AICommunicationManager
from ai_comms.records import RecordSource
from ai_comms.schema import AIMessage, AIResponse, CommunicationOptions, StreamEvent

logger = logging.getLogger(__name__)

SERVICE_ERROR_MESSAGE = "Unknown error occurred in AI communication service"


def _now_ms() -> int:
    return int(time.time() * 1000)


class AICommunicationService:
    """Agent-level send/stream/validate over a record source and a manager."""

    def __init__(
        self,
        records: RecordSource,
        manager: Optional[AICommunicationManager] = None,
    ):
        self.records = records
        self.manager = manager or AICommunicationManager()

    def _user_message(self, content: str) -> AIMessage:
        return AIMessage(role="user", content=content, metadata={"timestamp": _now_ms()})

    def _handle_error(self, error: BaseException) -> AICommunicationError:
        return normalize_error(error, default_message=SERVICE_ERROR_MESSAGE)

    async def send_message_to_agent(
        self,
        agent_id: int,
        content: str,
        options: Optional[CommunicationOptions] = None,
    ) -> AIResponse:
        """Send one user message to an agent."""
        return await self.send_conversation(agent_id, [self._user_message(content)], options)

    async def stream_message_to_agent(
        self,
        agent_id: int,
        content: str,
        options: Optional[CommunicationOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream a reply to one user message. Never raises."""
        async for event in self.stream_conversation(
            agent_id, [self._user_message(content)], options, cancel_event=cancel_event
        ):
            yield event

    async def send_conversation(
        self,
        agent_id: int,
        messages: list[AIMessage],
        options: Optional[CommunicationOptions] = None,
    ) -> AIResponse:
        """Send a full message history to an agent."""
        try:
            context = await self._load_agent_context(agent_id)
            return await self.manager.communicate(context, messages, options)
        except Exception as e:
            logger.error("Error sending message to agent %s: %s", agent_id, e)
            error = self._handle_error(e)
            if error is e:
                raise
            raise error from e

    async def stream_conversation(
        self,
        agent_id: int,
        messages: list[AIMessage],
        options: Optional[CommunicationOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream a reply to a full message history. Never raises."""
        try:
            context = await self._load_agent_context(agent_id)
            async for event in self.manager.stream(
                context, messages, options, cancel_event=cancel_event
            ):
                yield event
        except Exception as e:
            logger.error("Error streaming to agent %s: %s", agent_id, e)
            yield StreamEvent.failure(self._handle_error(e))

    async def validate_agent(self, agent_id: int) -> bool:
        """True when the agent resolves and its provider accepts our credential."""
        try:
            context = await self._load_agent_context(agent_id)
            return await self.manager.validate(context)
        except Exception as e:
            logger.error("Error validating agent %s: %s", agent_id, e)
            return False

    async def get_agent_context(self, agent_id: int) -> AgentContext:
        try:
            return await self._load_agent_context(agent_id)
        except AICommunicationError:
            raise
        except Exception as e:
            raise self._handle_error(e) from e

    def clear_cache(self) -> None:
        self.manager.clear()

    def get_cache_stats(self) -> dict[str, int]:
        return {"adapter_cache_size": self.manager.size()}

    async def _load_agent_context(self, agent_id: int) -> AgentContext:
        agents, models, providers = await asyncio.gather(
            self.records.list_agents(),
            self.records.list_models(),
            self.records.list_providers(),
        )

        agent = next((a for a in agents if a.id == agent_id), None)
        if agent is None:
            raise RecordNotFoundError(f"Agent with ID {agent_id} not found")

        if agent.model_id is None:
            raise ConfigurationError(f"Agent {agent_id} does not have an associated model")

        model = next((m for m in models if m.id == agent.model_id), None)
        if model is None:
            raise RecordNotFoundError(f"Model with ID {agent.model_id} not found")

        provider = next((p for p in providers if p.id == model.provider_id), None)
        if provider is None:
            raise RecordNotFoundError(f"Provider with ID {model.provider_id} not found")

        return AgentContext(agent=agent, model=model, provider=provider)
