"""Tolerant decoding of loosely-structured backend responses."""

import json
import logging
import re
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ParseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*|```")


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def _between(text: str, opener: str, closer: str) -> Optional[str]:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def parse_json(raw: Optional[str]) -> Optional[Any]:
    """Decode a backend response into a JSON value, or None if nothing parses.

    Attempts, in order:
      1. the whole text as-is;
      2. the text with code-fence markers removed;
      3. the span from the first ``{`` to the last ``}``;
      4. the span from the first ``[`` to the last ``]``.
    """
    if not raw or not raw.strip():
        return None

    value = _loads(raw)
    if value is not None:
        return value

    unfenced = _FENCE_RE.sub("", raw).strip()
    value = _loads(unfenced)
    if value is not None:
        return value

    for opener, closer in (("{", "}"), ("[", "]")):
        candidate = _between(unfenced, opener, closer)
        if candidate is not None:
            value = _loads(candidate)
            if value is not None:
                return value

    logger.debug("No JSON value found in %d-character response", len(raw))
    return None


def parse_payload(raw: Optional[str], schema: Type[T]) -> T:
    """Decode ``raw`` and validate it against ``schema``.

    ``schema`` is a pydantic model or any type a :class:`TypeAdapter` accepts
    (for example ``List[SideQuestPayload]``).

    Raises:
        ParseError: nothing decodes, or the decoded value does not fit the schema.
    """
    value = parse_json(raw)
    if value is None:
        raise ParseError("The backend response did not contain valid JSON")

    try:
        if isinstance(schema, type) and issubclass(schema, BaseModel):
            return schema.model_validate(value)
        return TypeAdapter(schema).validate_python(value)
    except PydanticValidationError as e:
        logger.warning("Response failed schema %s: %d error(s)", getattr(schema, "__name__", schema), e.error_count())
        raise ParseError(f"The backend response has the wrong shape: {e.errors()[0]['msg']}") from e
