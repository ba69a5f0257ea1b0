"""Shared test fixtures for ai-comms tests."""

import json

import pytest


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

OPENAI_BASE_URL = "https://api.openai.com"
OPENAI_CHAT_URL = f"{OPENAI_BASE_URL}/v1/chat/completions"
ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_MESSAGES_URL = f"{ANTHROPIC_BASE_URL}/v1/messages"

MOCK_OPENAI_RESPONSE = {
    "id": "chatcmpl-123",
    "object": "chat.completion",
    "created": 1699000000,
    "model": "gpt-4o-mini",
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "The capital of France is Paris."},
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 10, "completion_tokens": 8, "total_tokens": 18},
}

MOCK_ANTHROPIC_RESPONSE = {
    "id": "msg_123",
    "type": "message",
    "role": "assistant",
    "model": "claude-3-5-haiku-latest",
    "content": [{"type": "text", "text": "Bonjour!"}],
    "stop_reason": "end_turn",
    "stop_sequence": None,
    "usage": {"input_tokens": 12, "output_tokens": 4},
}

MOCK_OPENAI_STREAM = [
    '{"id":"chatcmpl-123","choices":[{"index":0,"delta":{"role":"assistant","content":""},"finish_reason":null}]}',
    '{"id":"chatcmpl-123","choices":[{"index":0,"delta":{"content":"The"},"finish_reason":null}]}',
    '{"id":"chatcmpl-123","choices":[{"index":0,"delta":{"content":" capital"},"finish_reason":null}]}',
    '{"id":"chatcmpl-123","choices":[{"index":0,"delta":{"content":" is"},"finish_reason":null}]}',
    '{"id":"chatcmpl-123","choices":[{"index":0,"delta":{"content":" Paris."},"finish_reason":null}]}',
    '{"id":"chatcmpl-123","choices":[{"index":0,"delta":{},"finish_reason":"stop"}]}',
    "[DONE]",
]

MOCK_ANTHROPIC_STREAM = [
    ("message_start", {"type": "message_start", "message": {"id": "msg_1", "content": [], "usage": {"input_tokens": 25, "output_tokens": 1}}}),
    ("content_block_start", {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}}),
    ("ping", {"type": "ping"}),
    ("content_block_delta", {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hello"}}),
    ("content_block_delta", {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": " there"}}),
    ("content_block_stop", {"type": "content_block_stop", "index": 0}),
    ("message_delta", {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 15}}),
    ("message_stop", {"type": "message_stop"}),
]


def sse_body(payloads: list[str]) -> str:
    """Frame raw payload strings as an SSE body."""
    return "".join(f"data: {p}\n\n" for p in payloads)


def anthropic_sse_body(events: list[tuple[str, dict]]) -> str:
    """Frame (event name, data) pairs the way the messages API does."""
    return "".join(
        f"event: {name}\ndata: {json.dumps(data)}\n\n" for name, data in events
    )


# ─────────────────────────────────────────────────────────────────────
# FIXTURES - Records
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def openai_provider():
    from ai_comms.config import Provider
    return Provider(
        id=1,
        code="openai",
        name="OpenAI",
        url=OPENAI_BASE_URL,
        authentication="bearer",
        secret_key="sk-test",
    )


@pytest.fixture
def anthropic_provider():
    from ai_comms.config import Provider
    return Provider(
        id=2,
        code="anthropic",
        name="Anthropic",
        url=ANTHROPIC_BASE_URL,
        authentication="api-key-header",
        secret_key="ant-test",
    )


@pytest.fixture
def openai_model():
    from ai_comms.config import Model
    return Model(
        id=10,
        code="gpt-4o-mini",
        name="GPT-4o mini",
        model="gpt-4o-mini",
        provider_id=1,
        endpoint="/v1/chat/completions",
        params={"temperature": 0.7, "max_tokens": 150},
        message_location="choices[0].message.content",
        input_token_count_location="usage.prompt_tokens",
        output_token_count_location="usage.completion_tokens",
    )


@pytest.fixture
def anthropic_model():
    from ai_comms.config import Model
    return Model(
        id=20,
        code="claude-haiku",
        name="Claude Haiku",
        model="claude-3-5-haiku-latest",
        provider_id=2,
        endpoint="/v1/messages",
        params={},
    )


@pytest.fixture
def openai_agent():
    from ai_comms.config import Agent
    return Agent(
        id=100,
        code="helper",
        name="Helper",
        system_prompt="You are a helpful assistant",
        model_id=10,
    )


@pytest.fixture
def anthropic_agent():
    from ai_comms.config import Agent
    return Agent(id=200, code="writer", name="Writer", system_prompt="", model_id=20)


@pytest.fixture
def openai_context(openai_agent, openai_model, openai_provider):
    from ai_comms.config import AgentContext
    return AgentContext(agent=openai_agent, model=openai_model, provider=openai_provider)


@pytest.fixture
def anthropic_context(anthropic_agent, anthropic_model, anthropic_provider):
    from ai_comms.config import AgentContext
    return AgentContext(agent=anthropic_agent, model=anthropic_model, provider=anthropic_provider)


@pytest.fixture
def record_source(
    openai_agent, anthropic_agent,
    openai_model, anthropic_model,
    openai_provider, anthropic_provider,
):
    from ai_comms.records import StaticRecordSource
    return StaticRecordSource(
        agents=[openai_agent, anthropic_agent],
        models=[openai_model, anthropic_model],
        providers=[openai_provider, anthropic_provider],
    )


@pytest.fixture
def no_env():
    """Environment lookup that never finds anything."""
    return lambda key: None


@pytest.fixture
def sample_messages():
    from ai_comms.schema import AIMessage
    return [
        AIMessage(role="user", content="What is the capital of France?"),
        AIMessage(role="assistant", content="The capital of France is Paris."),
        AIMessage(role="user", content="What about Germany?"),
    ]


@pytest.fixture
def tmp_records_file(tmp_path):
    """Write a YAML records file with one OpenAI agent."""
    path = tmp_path / "records.yaml"
    path.write_text(
        "providers:\n"
        "  - id: 1\n"
        "    code: openai\n"
        "    name: OpenAI\n"
        f"    url: {OPENAI_BASE_URL}\n"
        "    authentication: bearer\n"
        "    secret_key: sk-file\n"
        "models:\n"
        "  - id: 10\n"
        "    model: gpt-4o-mini\n"
        "    provider_id: 1\n"
        "    params: '{\"temperature\": 0.2}'\n"
        "    message_location: choices[0].message.content\n"
        "agents:\n"
        "  - id: 100\n"
        "    name: Helper\n"
        "    system_prompt: Be brief.\n"
        "    model_id: 10\n"
    )
    return path
