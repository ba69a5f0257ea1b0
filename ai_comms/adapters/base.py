"""
ProviderAdapter Protocol and the shared HTTP plumbing behind it.

The Protocol is the WHAT; BaseProviderAdapter carries everything that is
common to chat-completion backends (auth headers, URL and body building,
path-driven extraction, SSE streaming). Subclasses supply the backend
defaults and the stream event grammar.
"""

import asyncio
import json
import logging
import re
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Coroutine, Optional, Protocol

import httpx

from ai_comms.adapters.sse import SSEDecoder
from ai_comms.config import (
    AUTH_API_KEY_HEADER,
    AUTH_BEARER,
    AUTH_CUSTOM_HEADERS,
    DEFAULT_API_KEY_HEADER,
    Model,
    Provider,
    get_env as default_get_env,
    get_timeout_seconds,
)
from ai_comms.errors import (
    AICommunicationError,
    AuthenticationError,
    ConfigurationError,
    DecodeError,
    ProviderError,
    StreamCancelledError,
    TransportError,
    normalize_error,
)
from ai_comms.paths import extract_text, extract_usage, parse_error_response, read_path
from ai_comms.schema import (
    AIMessage,
    AIResponse,
    CommunicationOptions,
    StreamEvent,
    TokenUsage,
)

logger = logging.getLogger(__name__)

EnvLookup = Callable[[str], Optional[str]]

_EOF = object()


class ProviderAdapter(Protocol):
    """
    Contract for one backend family.

    - send_message raises ProviderError (ConfigurationError when no credential)
    - stream_message never raises; failures arrive as a terminal error event
    - validate_configuration never raises
    """

    async def send_message(
        self,
        messages: list[AIMessage],
        options: Optional[CommunicationOptions] = None,
    ) -> AIResponse:
        ...

    def stream_message(
        self,
        messages: list[AIMessage],
        options: Optional[CommunicationOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        ...

    async def validate_configuration(self) -> bool:
        ...


@dataclass
class StreamState:
    """Progress of one stream while its payloads are decoded."""
    parts: list[str] = field(default_factory=list)
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    done: bool = False
    # Text has ended but a trailing usage payload is still expected
    text_complete: bool = False
    await_usage: bool = False

    @property
    def text(self) -> str:
        return "".join(self.parts)

    def record_usage(self, usage: Optional[TokenUsage]) -> None:
        if usage is not None:
            self.input_tokens = usage.input_tokens
            self.output_tokens = usage.output_tokens

    def usage(self) -> Optional[TokenUsage]:
        if self.input_tokens is None and self.output_tokens is None:
            return None
        input_tokens = self.input_tokens or 0
        output_tokens = self.output_tokens or 0
        return TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )


async def _next_chunk(iterator: AsyncIterator[str]) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _EOF


class BaseProviderAdapter:
    """
    Shared behavior for chat-completion adapters.

    One instance serves one (provider, model) pair. The resolved credential
    is memoized on the instance, including a negative result, so dropping
    the instance is what forgets it.
    """

    family: str = "base"
    default_api_key_header: str = DEFAULT_API_KEY_HEADER
    default_content_path: Optional[str] = None
    default_stream_path: Optional[str] = None
    default_input_tokens_path: Optional[str] = None
    default_output_tokens_path: Optional[str] = None

    def __init__(
        self,
        provider: Provider,
        model: Model,
        get_env: Optional[EnvLookup] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.provider = provider
        self.model = model
        self._get_env = get_env or default_get_env
        configured_timeout = provider.configuration.get("timeout_seconds")
        try:
            self.timeout_seconds = float(
                configured_timeout or timeout_seconds or get_timeout_seconds()
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid timeout_seconds {configured_timeout!r} for provider '{provider.code}'"
            ) from e
        self._secret: Optional[str] = None
        self._secret_resolved = False

    # ─────────────────────────────────────────────────────────────────
    # CREDENTIALS
    # ─────────────────────────────────────────────────────────────────

    def secret_env_keys(self) -> list[str]:
        """Environment keys tried for the credential, most specific first."""
        code = re.sub(r"[^A-Za-z0-9]+", "_", self.provider.code or "").strip("_").upper()
        if not code:
            return []
        return [f"{code}_API_KEY", f"{code}_KEY"]

    def resolve_secret(self) -> Optional[str]:
        """Stored secret first, then environment lookup. Memoized."""
        if self._secret_resolved:
            return self._secret

        secret = self.provider.secret_key
        if not secret or not secret.strip():
            secret = None
            for key in self.secret_env_keys():
                value = self._get_env(key)
                if value and value.strip():
                    logger.debug("Using %s for provider %s", key, self.provider.code)
                    secret = value.strip()
                    break
        else:
            secret = secret.strip()

        self._secret = secret
        self._secret_resolved = True
        return secret

    def requires_secret(self) -> bool:
        return self.provider.authentication != AUTH_CUSTOM_HEADERS

    def _require_secret(self) -> str:
        secret = self.resolve_secret()
        if not secret:
            raise ConfigurationError(
                f"API key for provider '{self.provider.code}' not found in records or environment. "
                f"Set one of: {', '.join(self.secret_env_keys()) or 'a secret key on the provider'}."
            )
        return secret

    # ─────────────────────────────────────────────────────────────────
    # REQUEST BUILDING
    # ─────────────────────────────────────────────────────────────────

    def build_headers(self) -> dict[str, str]:
        """Auth headers for the provider's scheme. Raises ConfigurationError without a credential."""
        headers = {"Content-Type": "application/json"}
        scheme = self.provider.authentication

        if scheme == AUTH_BEARER:
            headers["Authorization"] = f"Bearer {self._require_secret()}"
        elif scheme == AUTH_API_KEY_HEADER:
            header_name = self.provider.configuration.get("api_key_header") or self.default_api_key_header
            headers[header_name] = self._require_secret()
        elif scheme == AUTH_CUSTOM_HEADERS:
            custom = self.provider.configuration.get("headers") or {}
            headers.update({str(k): str(v) for k, v in custom.items()})
        else:
            raise ConfigurationError(
                f"Unknown authentication scheme '{scheme}' for provider '{self.provider.code}'"
            )
        return headers

    def build_url(self, endpoint: Optional[str] = None) -> str:
        base_url = self.provider.url.rstrip("/")
        path = endpoint or self.model.endpoint
        if not path.startswith("/"):
            path = "/" + path
        return f"{base_url}{path}"

    def format_messages(self, messages: list[AIMessage]) -> list[dict]:
        return [{"role": m.role, "content": m.content} for m in messages]

    def build_request_body(
        self,
        messages: list[AIMessage],
        options: CommunicationOptions,
    ) -> dict[str, Any]:
        """
        Model defaults, then model id, messages and stream flag, then the
        typed options, then additional_params (last one wins).
        """
        body: dict[str, Any] = dict(self.model.params)
        body["model"] = self.model.model
        body["messages"] = self.format_messages(messages)
        body["stream"] = bool(options.stream)

        if options.temperature is not None:
            body["temperature"] = options.temperature
        if options.max_tokens is not None:
            body["max_tokens"] = options.max_tokens

        body.update(options.additional_params)
        return body

    # ─────────────────────────────────────────────────────────────────
    # RESPONSE EXTRACTION
    # ─────────────────────────────────────────────────────────────────

    def extract_content(self, response: Any) -> str:
        return extract_text(response, self.model.message_location or self.default_content_path)

    def extract_stream_content(self, chunk: Any) -> str:
        """First path that yields a string: stream path, content path, backend delta."""
        for path in (
            self.model.stream_message_location,
            self.model.message_location,
            self.default_stream_path,
        ):
            value = read_path(chunk, path)
            if isinstance(value, str):
                return value
        return ""

    def extract_usage(self, response: Any) -> Optional[TokenUsage]:
        return extract_usage(
            response,
            self.model.input_token_count_location or self.default_input_tokens_path,
            self.model.output_token_count_location or self.default_output_tokens_path,
        )

    def response_metadata(self, response: Any) -> dict[str, Any]:
        return {}

    def handle_error(self, error: Any) -> AICommunicationError:
        return normalize_error(error, error_cls=ProviderError)

    # ─────────────────────────────────────────────────────────────────
    # TRANSPORT
    # ─────────────────────────────────────────────────────────────────

    def _status_error(self, status_code: int, body: bytes) -> ProviderError:
        try:
            message = parse_error_response(json.loads(body))
        except ValueError:
            message = body.decode(errors="replace")[:200] or "API request failed"
        label = self.provider.name or self.provider.code
        error_cls = AuthenticationError if status_code in (401, 403) else TransportError
        return error_cls(
            f"{label} error (HTTP {status_code}): {message}",
            status_code=status_code,
            provider=self.provider.code,
        )

    def _transport_error(self, error: httpx.HTTPError) -> TransportError:
        label = self.provider.name or self.provider.code
        if isinstance(error, httpx.TimeoutException):
            return TransportError(f"{label} request timed out: {error}", provider=self.provider.code)
        return TransportError(f"{label} HTTP error: {error}", provider=self.provider.code)

    async def _request_json(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send one request and decode its JSON body."""
        logger.debug("%s %s (model=%s)", method, url, self.model.model)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.request(method, url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise self._transport_error(e) from e

        if response.status_code >= 400:
            raise self._status_error(response.status_code, response.content)
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(
                f"Invalid JSON from {self.provider.code}: {e}", provider=self.provider.code
            ) from e

    async def _await_or_cancel(
        self,
        operation: Coroutine[Any, Any, Any],
        cancel_event: Optional[asyncio.Event],
    ) -> Any:
        """Await operation, raced against cancel_event."""
        if cancel_event is None:
            return await operation
        if cancel_event.is_set():
            operation.close()
            raise StreamCancelledError(provider=self.provider.code)

        task = asyncio.ensure_future(operation)
        cancelled = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not task.done():
                task.cancel()
                # Let the operation unwind before the response is closed
                await asyncio.wait({task})

        if task.cancelled():
            raise StreamCancelledError(provider=self.provider.code)
        return task.result()

    async def _read_or_cancel(
        self,
        iterator: AsyncIterator[str],
        cancel_event: Optional[asyncio.Event],
    ) -> Any:
        """Next chunk of the body, raced against cancel_event."""
        return await self._await_or_cancel(_next_chunk(iterator), cancel_event)

    async def _stream_payloads(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        cancel_event: Optional[asyncio.Event],
    ) -> AsyncIterator[str]:
        """Open a streaming POST and yield SSE data payloads as they complete."""
        logger.debug("POST %s (stream, model=%s)", url, self.model.model)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                request = client.build_request("POST", url, json=body, headers=headers)
                # Waiting for the response headers is cancellable too
                response = await self._await_or_cancel(
                    client.send(request, stream=True), cancel_event
                )
                try:
                    if response.status_code >= 400:
                        error_body = await response.aread()
                        raise self._status_error(response.status_code, error_body)

                    decoder = SSEDecoder()
                    texts = response.aiter_text()
                    while True:
                        text = await self._read_or_cancel(texts, cancel_event)
                        if text is _EOF:
                            break
                        for payload in decoder.feed(text):
                            if cancel_event is not None and cancel_event.is_set():
                                raise StreamCancelledError(provider=self.provider.code)
                            yield payload
                    for payload in decoder.flush():
                        yield payload
                finally:
                    await response.aclose()
        except httpx.HTTPError as e:
            raise self._transport_error(e) from e

    # ─────────────────────────────────────────────────────────────────
    # PUBLIC API
    # ─────────────────────────────────────────────────────────────────

    async def send_message(
        self,
        messages: list[AIMessage],
        options: Optional[CommunicationOptions] = None,
    ) -> AIResponse:
        options = (options or CommunicationOptions()).model_copy(update={"stream": False})
        try:
            headers = self.build_headers()
            body = self.build_request_body(messages, options)
            data = await self._request_json("POST", self.build_url(), headers, body)
            return AIResponse(
                content=self.extract_content(data),
                usage=self.extract_usage(data),
                metadata=self.response_metadata(data),
            )
        except AICommunicationError:
            raise
        except Exception as e:
            raise self.handle_error(e) from e

    def new_stream_state(self, body: dict[str, Any]) -> StreamState:
        """Fresh progress record for a stream sending body."""
        return StreamState()

    def handle_stream_payload(self, payload: str, state: StreamState) -> str:
        """
        Decode one SSE payload, update state, return the text delta.

        Set state.done on the backend's completion signal. Raise
        DecodeError for malformed payloads and ProviderError for error events.
        """
        raise NotImplementedError

    def _decode_json_payload(self, payload: str) -> Any:
        try:
            return json.loads(payload)
        except ValueError as e:
            raise DecodeError(
                f"Malformed stream chunk from {self.provider.code}: {payload[:100]!r}",
                provider=self.provider.code,
            ) from e

    async def stream_message(
        self,
        messages: list[AIMessage],
        options: Optional[CommunicationOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream chunk events followed by exactly one complete or error event.
        Never raises.
        """
        state = StreamState()
        try:
            options = (options or CommunicationOptions()).model_copy(update={"stream": True})
            headers = self.build_headers()
            body = self.build_request_body(messages, options)
            state = self.new_stream_state(body)
            payloads = self._stream_payloads(self.build_url(), headers, body, cancel_event)
            async with aclosing(payloads):
                async for payload in payloads:
                    delta = self.handle_stream_payload(payload, state)
                    if delta:
                        state.parts.append(delta)
                        yield StreamEvent.chunk(delta)
                    if state.done:
                        break
            if not state.done and not state.text_complete:
                logger.warning(
                    "Stream from %s ended without a completion signal", self.provider.code
                )
        except Exception as e:
            error = self.handle_error(e)
            if isinstance(error, StreamCancelledError):
                logger.info("Stream from %s cancelled", self.provider.code)
            else:
                logger.error("Error streaming from %s: %s", self.provider.code, error.message)
            yield StreamEvent.failure(error)
            return

        yield StreamEvent.complete(state.text, usage=state.usage())

    async def probe(self) -> None:
        """Cheapest authenticated call the backend offers. Raises on failure."""
        raise NotImplementedError

    async def validate_configuration(self) -> bool:
        """True when a credential resolves (if needed) and the probe succeeds."""
        try:
            if self.requires_secret() and not self.resolve_secret():
                logger.warning("No API key available for provider %s", self.provider.code)
                return False
            await self.probe()
            return True
        except Exception as e:
            logger.warning(
                "%s configuration validation failed: %s", self.provider.code, normalize_error(e).message
            )
            return False
