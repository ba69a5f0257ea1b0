"""
AICommunicationManager - adapter registry and the uniform call/stream API.

Owns the adapter cache. Build one per process at the composition root and
hand it to the service; nothing here is module-global.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from ai_comms.adapters.anthropic import AnthropicAdapter
from ai_comms.adapters.base import BaseProviderAdapter, EnvLookup
from ai_comms.adapters.openai import OpenAIAdapter
from ai_comms.config import AgentContext, Model, Provider
from ai_comms.errors import UnsupportedProviderError
from ai_comms.schema import AIMessage, AIResponse, CommunicationOptions, StreamEvent

logger = logging.getLogger(__name__)


class AICommunicationManager:
    """
    Selects, caches and drives provider adapters.

    Cache key is "{provider.code}-{model.id}". There is no await between a
    cache miss and the insert, so concurrent calls on the event loop never
    build two adapters for one key.
    """

    def __init__(
        self,
        get_env: Optional[EnvLookup] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._adapters: dict[str, BaseProviderAdapter] = {}
        self._get_env = get_env
        self._timeout_seconds = timeout_seconds

    async def communicate(
        self,
        context: AgentContext,
        user_messages: list[AIMessage],
        options: Optional[CommunicationOptions] = None,
    ) -> AIResponse:
        """Send the conversation (agent system prompt first) and return the response."""
        adapter = self.get_adapter(context)
        messages = self.prepare_messages(context, user_messages)
        return await adapter.send_message(messages, options or CommunicationOptions())

    async def stream(
        self,
        context: AgentContext,
        user_messages: list[AIMessage],
        options: Optional[CommunicationOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream the conversation. Events are passed through as the adapter yields them."""
        adapter = self.get_adapter(context)
        messages = self.prepare_messages(context, user_messages)
        options = (options or CommunicationOptions()).model_copy(update={"stream": True})

        async for event in adapter.stream_message(messages, options, cancel_event=cancel_event):
            yield event

    async def validate(self, context: AgentContext) -> bool:
        """Check the agent's provider configuration. Never raises."""
        try:
            adapter = self.get_adapter(context)
            return await adapter.validate_configuration()
        except Exception as e:
            logger.error("Agent configuration validation failed: %s", e)
            return False

    def get_adapter(self, context: AgentContext) -> BaseProviderAdapter:
        key = context.cache_key
        adapter = self._adapters.get(key)
        if adapter is None:
            adapter = self.create_adapter(context.provider, context.model)
            self._adapters[key] = adapter
            logger.debug("Created %s adapter for %s", adapter.family, key)
        return adapter

    def create_adapter(self, provider: Provider, model: Model) -> BaseProviderAdapter:
        """Pick the adapter family by provider code. Unknown codes are an error."""
        kwargs = {"get_env": self._get_env, "timeout_seconds": self._timeout_seconds}
        if provider.code == "openai":
            return OpenAIAdapter(provider, model, **kwargs)
        elif provider.code == "anthropic":
            return AnthropicAdapter(provider, model, **kwargs)
        raise UnsupportedProviderError(provider.code)

    def prepare_messages(
        self,
        context: AgentContext,
        user_messages: list[AIMessage],
    ) -> list[AIMessage]:
        messages: list[AIMessage] = []
        system_prompt = context.agent.system_prompt
        if system_prompt and system_prompt.strip():
            messages.append(
                AIMessage(role="system", content=system_prompt, metadata={"source": "agent"})
            )
        messages.extend(user_messages)
        return messages

    def clear(self) -> None:
        """Drop every cached adapter, and with them every cached credential."""
        self._adapters.clear()

    def size(self) -> int:
        return len(self._adapters)
