"""
OpenAIAdapter - OpenAI-style chat completions.

Covers api.openai.com and the many servers that speak the same wire
format. Streams end on the "[DONE]" sentinel or when a chunk reports a
finish_reason. When the request asks for stream_options.include_usage,
reading continues past finish_reason until the usage chunk arrives.
"""

import logging
from typing import Any

from ai_comms.adapters.base import BaseProviderAdapter, StreamState
from ai_comms.config import AUTH_CUSTOM_HEADERS
from ai_comms.errors import ProviderError
from ai_comms.paths import parse_error_response, read_path

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DEFAULT_MODELS_ENDPOINT = "/v1/models"


class OpenAIAdapter(BaseProviderAdapter):
    """OpenAI-style implementation of the ProviderAdapter protocol."""

    family = "openai"
    default_content_path = "choices[0].message.content"
    default_stream_path = "choices[0].delta.content"
    default_input_tokens_path = "usage.prompt_tokens"
    default_output_tokens_path = "usage.completion_tokens"

    def build_headers(self) -> dict[str, str]:
        headers = super().build_headers()
        organization = self.provider.configuration.get("organization")
        if organization and self.provider.authentication != AUTH_CUSTOM_HEADERS:
            headers["OpenAI-Organization"] = str(organization)
        return headers

    def response_metadata(self, response: Any) -> dict[str, Any]:
        if not isinstance(response, dict):
            return {}
        return {
            "model": response.get("model"),
            "id": response.get("id"),
            "created": response.get("created"),
            "finish_reason": read_path(response, "choices[0].finish_reason"),
        }

    def handle_stream_payload(self, payload: str, state: StreamState) -> str:
        if payload.strip() == DONE_SENTINEL:
            state.done = True
            return ""

        chunk = self._decode_json_payload(payload)
        if isinstance(chunk, dict) and chunk.get("error"):
            raise ProviderError(parse_error_response(chunk), provider=self.provider.code)

        # With stream_options.include_usage the usage chunk follows the finish_reason chunk
        state.record_usage(self.extract_usage(chunk))
        if state.text_complete:
            if state.usage() is not None:
                state.done = True
            return ""

        delta = self.extract_stream_content(chunk)
        if read_path(chunk, "choices[0].finish_reason") is not None:
            state.text_complete = True
            state.done = not state.await_usage or state.usage() is not None
        return delta

    def new_stream_state(self, body: dict[str, Any]) -> StreamState:
        return StreamState(await_usage=read_path(body, "stream_options.include_usage") is True)

    async def probe(self) -> None:
        endpoint = self.provider.configuration.get("models_endpoint") or DEFAULT_MODELS_ENDPOINT
        await self._request_json("GET", self.build_url(endpoint), self.build_headers())
