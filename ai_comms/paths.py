"""
Path extraction: reads values out of arbitrary JSON-like responses.

A path is dot-separated keys, each optionally followed by one or more
[N] indices:

    choices[0].message.content
    content[0].text
    matrix[1][0]
    [0].text

Models store these paths so new providers can be wired up without code.
"""

import logging
import re
from typing import Any, Iterable, Optional, Union

from ai_comms.schema import TokenUsage
from ai_comms.errors import normalize_error

logger = logging.getLogger(__name__)

Segment = Union[str, int]

_KEY_RE = re.compile(r"^([^\[\]]*)((?:\[\d+\])*)$")
_INDEX_RE = re.compile(r"\[(\d+)\]")


class PathSyntaxError(ValueError):
    """Malformed path expression."""
    pass


def parse_path(path: str) -> list[Segment]:
    """
    Split a path into key (str) and index (int) segments.

    Raises:
        PathSyntaxError: on empty keys, unbalanced or non-numeric brackets
    """
    segments: list[Segment] = []
    for position, part in enumerate(path.split(".")):
        match = _KEY_RE.match(part)
        if match is None:
            raise PathSyntaxError(f"Malformed segment {part!r} in path {path!r}")
        key, indices = match.groups()
        if key:
            segments.append(key)
        elif not indices or position > 0:
            # Only the first segment may be a bare index like "[0]"
            raise PathSyntaxError(f"Empty key in path {path!r}")
        segments.extend(int(i) for i in _INDEX_RE.findall(indices))
    return segments


def _walk(value: Any, segments: Iterable[Segment]) -> Any:
    current = value
    for segment in segments:
        if current is None:
            return None
        if isinstance(segment, int):
            if not isinstance(current, (list, tuple)) or segment >= len(current):
                return None
            current = current[segment]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(segment)
    return current


def read_path(value: Any, path: Optional[str]) -> Any:
    """
    Return the value at path, or None if anything along the way is missing.

    Never raises: malformed paths are logged and read as None.
    """
    if not path:
        return None
    try:
        segments = parse_path(path)
    except PathSyntaxError as e:
        logger.error("Error parsing JSON path %r: %s", path, e)
        return None
    return _walk(value, segments)


# ─────────────────────────────────────────────────────────────────────
# RESPONSE NORMALIZATION
# ─────────────────────────────────────────────────────────────────────

def extract_text(response: Any, path: Optional[str]) -> str:
    """String at path; an object with a "text" field also counts."""
    content = read_path(response, path)
    if isinstance(content, str):
        return content
    if isinstance(content, dict) and isinstance(content.get("text"), str):
        return content["text"]
    return ""


def extract_stream_text(chunk: Any, path: Optional[str]) -> str:
    content = read_path(chunk, path)
    return content if isinstance(content, str) else ""


def _as_count(value: Any) -> Optional[int]:
    # bool is an int subclass; true/false are not token counts
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def extract_usage(
    response: Any,
    input_path: Optional[str],
    output_path: Optional[str],
) -> Optional[TokenUsage]:
    """
    Read token counts. Returns None when neither count is present, so
    "not reported" stays distinguishable from "zero tokens".
    """
    input_tokens = _as_count(read_path(response, input_path))
    output_tokens = _as_count(read_path(response, output_path))
    if input_tokens is None and output_tokens is None:
        return None
    input_tokens = input_tokens or 0
    output_tokens = output_tokens or 0
    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=input_tokens + output_tokens,
    )


def parse_error_response(body: Any) -> str:
    """Extract a user-friendly message from a provider error body."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, str) and error:
            return error
        if isinstance(error, dict):
            if error.get("message"):
                return str(error["message"])
            if error.get("type") and error.get("code"):
                return f"{error['type']}: {error['code']}"
        if body.get("message"):
            return str(body["message"])
    return "API request failed"


def format_error(value: Any) -> str:
    """Readable message for an exception, string or provider error payload."""
    nested = read_path(value, "error.message") if isinstance(value, dict) else None
    if isinstance(nested, str) and nested:
        return nested
    return normalize_error(value, default_message="Unknown error occurred").message


def validate_response(response: Any, paths: Iterable[str]) -> bool:
    """True when every path resolves to a non-None value."""
    return all(read_path(response, path) is not None for path in paths)
