from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from typing import Any

import rfc8785
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Values rfc8785 writes as-is.
_PASSTHROUGH_TYPES = (bool, int, float, str, type(None))


def _normalize_for_jcs(value: Any) -> bool | int | float | str | None | list[Any] | dict[str, Any]:
    """Flatten an audit record and everything inside it to plain JSON values.

    Dataclasses and Pydantic models become objects. Sets become sorted lists
    so group lists encode the same way on every run.
    """
    # Enum before passthrough: our enums subclass str.
    if isinstance(value, Enum):
        return _normalize_for_jcs(value.value)

    if isinstance(value, _PASSTHROUGH_TYPES):
        return value

    if isinstance(value, BaseModel):
        return _normalize_for_jcs(value.model_dump(mode="json"))

    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _normalize_for_jcs(getattr(value, f.name)) for f in dataclasses.fields(value)}

    if isinstance(value, dict):
        return {str(k): _normalize_for_jcs(v) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_normalize_for_jcs(item) for item in value]

    if isinstance(value, (set, frozenset)):
        return sorted(_normalize_for_jcs(item) for item in value)

    if isinstance(value, bytes):
        raise TypeError(
            f"Cannot serialize bytes to canonical JSON. "
            f"Decode page content to text first: {value!r:.64}"
        )

    raise TypeError(
        f"Cannot serialize type {type(value).__name__} to canonical JSON. "
        f"Convert to a JSON-compatible type first."
    )


def to_canonical_json(value: Any) -> str:
    """Encode an audit record or CLI result as RFC 8785 canonical JSON.

    Two denials with the same fields always log the same line, so audit
    output can be diffed and grepped by exact value.

    Raises:
        TypeError: For values with no JSON form, such as raw page bytes.
        rfc8785.CanonicalizationError: For floats RFC 8785 cannot encode.
    """
    normalized = _normalize_for_jcs(value)
    return rfc8785.dumps(normalized).decode("utf-8")
