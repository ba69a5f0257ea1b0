"""
AnthropicAdapter - Anthropic-style messages API.

Differences from the OpenAI wire format:
- no "system" role: system messages are folded into a top-level field
- max_tokens is mandatory
- typed stream events; "message_stop" ends the stream
"""

import logging
from typing import Any, Optional

from ai_comms.adapters.base import BaseProviderAdapter, StreamState
from ai_comms.config import (
    AUTH_CUSTOM_HEADERS,
    DEFAULT_ANTHROPIC_MAX_TOKENS,
    DEFAULT_ANTHROPIC_VERSION,
)
from ai_comms.errors import ProviderError
from ai_comms.paths import parse_error_response, read_path
from ai_comms.schema import AIMessage, CommunicationOptions

logger = logging.getLogger(__name__)

SYSTEM_SEPARATOR = "\n\n"

# Events that carry bookkeeping rather than text
_CONTROL_EVENTS = {"message_start", "message_delta", "message_stop", "ping", "error"}


def fold_system_messages(messages: list[AIMessage]) -> tuple[Optional[str], list[AIMessage]]:
    """
    Split system messages out of a conversation.

    Returns (system text joined by blank lines or None, remaining messages
    in their original order).
    """
    system_parts = [m.content for m in messages if m.role == "system"]
    rest = [m for m in messages if m.role != "system"]
    system = SYSTEM_SEPARATOR.join(system_parts) if system_parts else None
    return system, rest


class AnthropicAdapter(BaseProviderAdapter):
    """Anthropic-style implementation of the ProviderAdapter protocol."""

    family = "anthropic"
    default_api_key_header = "x-api-key"
    default_content_path = "content[0].text"
    default_stream_path = "delta.text"
    default_input_tokens_path = "usage.input_tokens"
    default_output_tokens_path = "usage.output_tokens"

    def build_headers(self) -> dict[str, str]:
        headers = super().build_headers()
        if self.provider.authentication != AUTH_CUSTOM_HEADERS:
            headers["anthropic-version"] = str(
                self.provider.configuration.get("anthropic_version") or DEFAULT_ANTHROPIC_VERSION
            )
        return headers

    def format_messages(self, messages: list[AIMessage]) -> list[dict]:
        _, rest = fold_system_messages(messages)
        return super().format_messages(rest)

    def build_request_body(
        self,
        messages: list[AIMessage],
        options: CommunicationOptions,
    ) -> dict[str, Any]:
        body = super().build_request_body(messages, options)
        system, _ = fold_system_messages(messages)
        if system is not None and "system" not in options.additional_params:
            body["system"] = system
        if body.get("max_tokens") is None:
            body["max_tokens"] = DEFAULT_ANTHROPIC_MAX_TOKENS
        return body

    def response_metadata(self, response: Any) -> dict[str, Any]:
        if not isinstance(response, dict):
            return {}
        return {
            "model": response.get("model"),
            "id": response.get("id"),
            "type": response.get("type"),
            "role": response.get("role"),
            "stop_reason": response.get("stop_reason"),
            "stop_sequence": response.get("stop_sequence"),
        }

    def handle_stream_payload(self, payload: str, state: StreamState) -> str:
        event = self._decode_json_payload(payload)
        if not isinstance(event, dict):
            return ""
        event_type = event.get("type")

        if event_type == "error":
            raise ProviderError(parse_error_response(event), provider=self.provider.code)
        if event_type == "message_stop":
            state.done = True
            return ""
        if event_type == "message_start":
            input_tokens = read_path(event, "message.usage.input_tokens")
            if isinstance(input_tokens, int):
                state.input_tokens = input_tokens
            return ""
        if event_type == "message_delta":
            output_tokens = read_path(event, "usage.output_tokens")
            if isinstance(output_tokens, int):
                state.output_tokens = output_tokens
            return ""
        if event_type in _CONTROL_EVENTS:
            return ""

        return self.extract_stream_content(event)

    async def probe(self) -> None:
        body = {
            "model": self.model.model,
            "max_tokens": 1,
            "messages": [{"role": "user", "content": "test"}],
        }
        await self._request_json("POST", self.build_url(), self.build_headers(), body)
