"""Turn a raw model reply into validated structured data, or a typed failure."""
import json
import logging
import re
from typing import TypeVar

from pydantic import TypeAdapter, ValidationError

from evergreen.errors import EmptyResponseError, InvalidJsonError
from evergreen.gateway import FinishReason

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)

EMPTY_MESSAGES = {
    FinishReason.CONTENT_FILTERED: (
        "The request was blocked by the provider's content policy. Please modify the input text."
    ),
    FinishReason.LENGTH: (
        "The response was cut off because it reached the maximum token limit. "
        "Shorten the input or raise MAX_TOKENS."
    ),
}
UNEXPLAINED_EMPTY = "The model returned an empty response."


def strip_code_fences(text: str) -> str:
    """Remove one surrounding ```json ... ``` (or bare ```) fence, if present."""
    s = text.strip()
    m = _FENCE_RE.match(s)
    if m:
        return m.group(1).strip()
    return s


def parse(raw_text: str, finish_reason: FinishReason, shape: type[T]) -> T:
    """Decode raw_text as JSON matching shape. All-or-nothing: no partial field recovery.

    Raises:
        EmptyResponseError: raw_text is empty; the message depends on finish_reason.
        InvalidJsonError: the text is not JSON, or not JSON of the expected shape.
    """
    if not raw_text or not raw_text.strip():
        logger.error("Empty model reply (finish_reason=%s)", finish_reason.value)
        raise EmptyResponseError(EMPTY_MESSAGES.get(finish_reason, UNEXPLAINED_EMPTY), finish_reason)
    body = strip_code_fences(raw_text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        logger.error("Failed to decode model reply as JSON: %s\n%s", exc, raw_text)
        raise InvalidJsonError(f"Invalid JSON response from the model: {exc.msg}", raw_text) from exc
    try:
        return TypeAdapter(shape).validate_python(data)
    except ValidationError as exc:
        logger.error("Model reply has the wrong shape: %s\n%s", exc, raw_text)
        raise InvalidJsonError(
            f"The model's JSON response did not have the expected structure ({exc.error_count()} problem(s))",
            raw_text,
        ) from exc
