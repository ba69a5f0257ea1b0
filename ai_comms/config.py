"""
Configuration constants, environment getters and record models for ai-comms.
"""

import json
import os
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# ─────────────────────────────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────────────────────────────

DEFAULT_ENDPOINT: str = "/v1/chat/completions"
DEFAULT_TIMEOUT_SECONDS: int = 120
DEFAULT_MAX_HISTORY_MESSAGES: int = 50
DEFAULT_ANTHROPIC_MAX_TOKENS: int = 1024
DEFAULT_ANTHROPIC_VERSION: str = "2023-06-01"
DEFAULT_API_KEY_HEADER: str = "x-api-key"
DEFAULT_RECORDS_PATH: str = "records.yaml"

# Authentication schemes understood by the adapters
AUTH_BEARER: str = "bearer"
AUTH_API_KEY_HEADER: str = "api-key-header"
AUTH_CUSTOM_HEADERS: str = "custom-headers"

# Older records spell the schemes the way the database columns did
_AUTH_ALIASES: dict[str, str] = {
    "x-api-key": AUTH_API_KEY_HEADER,
    "api-key": AUTH_API_KEY_HEADER,
    "custom": AUTH_CUSTOM_HEADERS,
}


# ─────────────────────────────────────────────────────────────────────
# ENVIRONMENT LOADING
# ─────────────────────────────────────────────────────────────────────

def get_env(key: str) -> Optional[str]:
    """Look up an environment variable. Default credential lookup for adapters."""
    return os.environ.get(key)


def get_timeout_seconds() -> int:
    """
    Get HTTP timeout for provider calls.

    Set AI_COMMS_TIMEOUT_SECONDS in .env (default: 120).
    """
    try:
        return int(os.environ.get("AI_COMMS_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)))
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS


def get_max_history_messages() -> int:
    """
    Get how many messages of a conversation are sent with each turn.

    Set AI_COMMS_MAX_HISTORY in .env (default: 50).
    """
    try:
        return int(os.environ.get("AI_COMMS_MAX_HISTORY", str(DEFAULT_MAX_HISTORY_MESSAGES)))
    except ValueError:
        return DEFAULT_MAX_HISTORY_MESSAGES


def get_records_path() -> str:
    """Get the agent/model/provider records file from AI_COMMS_RECORDS or default."""
    path = os.environ.get("AI_COMMS_RECORDS")
    if path and path.strip():
        return path.strip()
    return DEFAULT_RECORDS_PATH


def _decode_json_field(value: Any) -> Any:
    """Records coming from the database keep dict columns as JSON text."""
    if value is None or value == "":
        return {}
    if isinstance(value, str):
        decoded = json.loads(value)
        if not isinstance(decoded, dict):
            raise ValueError("expected a JSON object")
        return decoded
    return value


# ─────────────────────────────────────────────────────────────────────
# DATA MODELS
# ─────────────────────────────────────────────────────────────────────

class Provider(BaseModel):
    """A backend vendor account: base URL, auth scheme and credential."""
    id: int
    code: str
    name: str = ""
    url: str
    authentication: str = AUTH_BEARER
    secret_key: Optional[str] = None
    configuration: dict[str, Any] = Field(default_factory=dict)

    @field_validator("authentication", mode="before")
    @classmethod
    def _normalize_authentication(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return _AUTH_ALIASES.get(value, value)
        return value

    @field_validator("configuration", mode="before")
    @classmethod
    def _decode_configuration(cls, value: Any) -> Any:
        return _decode_json_field(value)


class Model(BaseModel):
    """A remote inference endpoint, including where to find things in its responses."""
    id: int
    code: str = ""
    name: str = ""
    model: str
    provider_id: int
    endpoint: str = DEFAULT_ENDPOINT
    params: dict[str, Any] = Field(default_factory=dict)
    message_location: Optional[str] = None
    stream_message_location: Optional[str] = None
    input_token_count_location: Optional[str] = None
    output_token_count_location: Optional[str] = None
    input_price: Optional[float] = None
    output_price: Optional[float] = None

    @field_validator("params", mode="before")
    @classmethod
    def _decode_params(cls, value: Any) -> Any:
        return _decode_json_field(value)

    @field_validator("endpoint", mode="before")
    @classmethod
    def _default_endpoint(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_ENDPOINT
        return value


class Agent(BaseModel):
    """A configured persona: system instruction plus a model reference."""
    id: int
    code: str = ""
    name: str = ""
    description: str = ""
    system_prompt: Optional[str] = None
    configuration: dict[str, Any] = Field(default_factory=dict)
    model_id: Optional[int] = None
    enable: bool = True

    @field_validator("configuration", mode="before")
    @classmethod
    def _decode_configuration(cls, value: Any) -> Any:
        return _decode_json_field(value)


class AgentContext(BaseModel):
    """Agent with its model and provider, resolved for a single request."""
    agent: Agent
    model: Model
    provider: Provider

    @property
    def cache_key(self) -> str:
        return f"{self.provider.code}-{self.model.id}"
