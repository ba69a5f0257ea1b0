from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]


class AIMessage(BaseModel):
    """
    One message of a conversation.
    Order within a list is significant and preserved by every layer.
    """
    role: Role
    content: str
    metadata: Optional[Dict[str, Any]] = None


class CommunicationOptions(BaseModel):
    """
    Per-call options. additional_params is merged into the request body
    last, so it overrides model defaults and the typed options.
    """
    stream: bool = False
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    additional_params: Dict[str, Any] = Field(default_factory=dict)


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class AIResponse(BaseModel):
    """
    Normalized result of a non-streaming call.
    usage is None when the provider did not report token counts.
    """
    content: str
    usage: Optional[TokenUsage] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class StreamEvent(BaseModel):
    """
    One event of a stream: chunk, complete or error.

    A stream carries any number of chunk events followed by exactly one
    complete or error event.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: Literal["chunk", "complete", "error"]
    data: Optional[str] = None
    error: Optional[Exception] = None
    usage: Optional[TokenUsage] = None

    @classmethod
    def chunk(cls, data: str) -> "StreamEvent":
        return cls(type="chunk", data=data)

    @classmethod
    def complete(cls, data: str, usage: Optional[TokenUsage] = None) -> "StreamEvent":
        return cls(type="complete", data=data, usage=usage)

    @classmethod
    def failure(cls, error: Exception) -> "StreamEvent":
        return cls(type="error", error=error)

    @property
    def is_terminal(self) -> bool:
        return self.type != "chunk"
