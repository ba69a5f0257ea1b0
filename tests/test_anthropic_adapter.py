"""Tests for AnthropicAdapter: system folding, headers, typed stream events."""

import json

import httpx
import pytest
import respx

from ai_comms.adapters.anthropic import AnthropicAdapter, fold_system_messages
from ai_comms.errors import AuthenticationError, ProviderError
from ai_comms.schema import AIMessage, CommunicationOptions
from tests.conftest import (
    ANTHROPIC_MESSAGES_URL,
    MOCK_ANTHROPIC_RESPONSE,
    MOCK_ANTHROPIC_STREAM,
    anthropic_sse_body,
)


@pytest.fixture
def adapter(anthropic_provider, anthropic_model, no_env):
    return AnthropicAdapter(anthropic_provider, anthropic_model, get_env=no_env, timeout_seconds=5)


@pytest.fixture
def conversation():
    return [
        AIMessage(role="system", content="Be terse."),
        AIMessage(role="user", content="Hi"),
        AIMessage(role="system", content="Answer in French."),
        AIMessage(role="assistant", content="Salut"),
        AIMessage(role="user", content="How are you?"),
    ]


class TestFoldSystemMessages:
    def test_joins_system_messages(self, conversation):
        system, rest = fold_system_messages(conversation)
        assert system == "Be terse.\n\nAnswer in French."
        assert [m.content for m in rest] == ["Hi", "Salut", "How are you?"]

    def test_no_system_messages(self):
        messages = [AIMessage(role="user", content="Hi")]
        system, rest = fold_system_messages(messages)
        assert system is None
        assert rest == messages


class TestRequestBuilding:
    def test_body_has_top_level_system(self, adapter, conversation):
        body = adapter.build_request_body(conversation, CommunicationOptions())

        assert body["system"] == "Be terse.\n\nAnswer in French."
        assert all(m["role"] != "system" for m in body["messages"])
        assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]

    def test_no_system_field_without_system_messages(self, adapter):
        body = adapter.build_request_body(
            [AIMessage(role="user", content="Hi")], CommunicationOptions()
        )
        assert "system" not in body

    def test_max_tokens_default(self, adapter, conversation):
        assert adapter.build_request_body(conversation, CommunicationOptions())["max_tokens"] == 1024

    def test_max_tokens_from_options(self, adapter, conversation):
        body = adapter.build_request_body(conversation, CommunicationOptions(max_tokens=64))
        assert body["max_tokens"] == 64

    def test_additional_system_param_wins(self, adapter, conversation):
        options = CommunicationOptions(additional_params={"system": "override"})
        assert adapter.build_request_body(conversation, options)["system"] == "override"

    def test_headers(self, adapter):
        headers = adapter.build_headers()
        assert headers["x-api-key"] == "ant-test"
        assert headers["anthropic-version"] == "2023-06-01"
        assert "Authorization" not in headers

    def test_configured_version(self, anthropic_provider, anthropic_model):
        provider = anthropic_provider.model_copy(
            update={"configuration": {"anthropic_version": "2024-01-01"}}
        )
        adapter = AnthropicAdapter(provider, anthropic_model)
        assert adapter.build_headers()["anthropic-version"] == "2024-01-01"


class TestSendMessage:
    @pytest.mark.asyncio
    @respx.mock
    async def test_returns_content_and_usage(self, adapter, conversation):
        route = respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(200, json=MOCK_ANTHROPIC_RESPONSE)
        )

        response = await adapter.send_message(conversation)

        assert response.content == "Bonjour!"
        assert response.usage.input_tokens == 12
        assert response.usage.output_tokens == 4
        assert response.usage.total_tokens == 16
        assert response.metadata["stop_reason"] == "end_turn"
        body = json.loads(route.calls[0].request.content)
        assert body["system"] == "Be terse.\n\nAnswer in French."

    @pytest.mark.asyncio
    @respx.mock
    async def test_forbidden_is_authentication_error(self, adapter, conversation):
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(
                403,
                json={"type": "error", "error": {"type": "permission_error", "message": "Forbidden"}},
            )
        )

        with pytest.raises(AuthenticationError, match="Forbidden"):
            await adapter.send_message(conversation)


class TestStreamMessage:
    @pytest.mark.asyncio
    @respx.mock
    async def test_typed_events(self, adapter, conversation):
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(200, text=anthropic_sse_body(MOCK_ANTHROPIC_STREAM))
        )

        events = [e async for e in adapter.stream_message(conversation)]

        assert [e.type for e in events] == ["chunk", "chunk", "complete"]
        assert events[-1].data == "Hello there"
        assert events[-1].usage.input_tokens == 25
        assert events[-1].usage.output_tokens == 15
        assert events[-1].usage.total_tokens == 40

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_event(self, adapter, conversation):
        stream = MOCK_ANTHROPIC_STREAM[:4] + [
            ("error", {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}),
        ]
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(200, text=anthropic_sse_body(stream))
        )

        events = [e async for e in adapter.stream_message(conversation)]

        assert [e.type for e in events] == ["chunk", "error"]
        assert isinstance(events[-1].error, ProviderError)
        assert events[-1].error.message == "Overloaded"

    @pytest.mark.asyncio
    @respx.mock
    async def test_message_stop_ends_stream(self, adapter, conversation):
        stream = MOCK_ANTHROPIC_STREAM + [
            ("content_block_delta", {"type": "content_block_delta", "delta": {"text": " late"}}),
        ]
        respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(200, text=anthropic_sse_body(stream))
        )

        events = [e async for e in adapter.stream_message(conversation)]
        assert events[-1].data == "Hello there"


class TestValidateConfiguration:
    @pytest.mark.asyncio
    @respx.mock
    async def test_probe_is_minimal_message(self, adapter):
        route = respx.post(ANTHROPIC_MESSAGES_URL).mock(
            return_value=httpx.Response(200, json=MOCK_ANTHROPIC_RESPONSE)
        )

        assert await adapter.validate_configuration() is True
        body = json.loads(route.calls[0].request.content)
        assert body["max_tokens"] == 1
        assert body["model"] == "claude-3-5-haiku-latest"

    @pytest.mark.asyncio
    @respx.mock
    async def test_probe_failure(self, adapter):
        respx.post(ANTHROPIC_MESSAGES_URL).mock(return_value=httpx.Response(500))
        assert await adapter.validate_configuration() is False
