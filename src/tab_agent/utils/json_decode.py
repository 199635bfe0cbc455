"""Decoding of JSON objects embedded in model replies."""

import json
import logging
import re
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import ReplyDecodeError

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


def strip_code_fences(content: str) -> str:
    """Return the body of the first fenced block, or the text unchanged."""
    match = _FENCE_RE.search(content)
    if match:
        return match.group(1).strip()
    return content.strip()


def extract_json_object(content: str) -> Optional[str]:
    """
    Return the first brace-balanced ``{...}`` span in ``content``.

    Braces inside JSON string literals are ignored. Returns None when no
    balanced object exists.
    """
    start = content.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(content)):
            ch = content[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return content[start:i + 1]
        start = content.find("{", start + 1)
    return None


def decode_json_object(content: str) -> dict[str, Any]:
    """
    Decode the first JSON object in a model reply.

    Raises:
        ReplyDecodeError: No object found, or it is not valid JSON
    """
    if not content or not content.strip():
        raise ReplyDecodeError("Empty model reply")

    body = strip_code_fences(content)
    candidate = extract_json_object(body)
    if candidate is None and body != content.strip():
        candidate = extract_json_object(content)
    if candidate is None:
        raise ReplyDecodeError(f"No JSON object in model reply: {content[:120]!r}")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ReplyDecodeError(f"Invalid JSON in model reply: {e}") from e
    if not isinstance(data, dict):
        raise ReplyDecodeError("Model reply JSON is not an object")
    return data


def decode_json_reply(
    content: str,
    model_class: type[T],
    *,
    fallback: Optional[T] = None,
) -> T:
    """
    Decode a model reply into a Pydantic model.

    Strips code fences, extracts the first brace-balanced object and
    validates it into ``model_class``.

    Args:
        content: Raw model reply
        model_class: Pydantic model class to validate into
        fallback: Returned instead of raising when decoding fails

    Raises:
        ReplyDecodeError: Decoding failed and no fallback was given
    """
    try:
        data = decode_json_object(content)
        return model_class.model_validate(data)
    except (ReplyDecodeError, ValidationError) as e:
        if fallback is not None:
            logger.debug(f"Using fallback {model_class.__name__}: {e}")
            return fallback
        if isinstance(e, ReplyDecodeError):
            raise
        raise ReplyDecodeError(f"Reply does not match {model_class.__name__}: {e}") from e
