"""Tagged JSON values.

Response bodies are decoded into plain Python values (``None``, ``bool``,
``int``/``float``, ``str``, ``list`` and ``dict``).  The classifier never
inspects those values with ad-hoc ``isinstance`` chains; it asks
:func:`kind_of` for the :class:`JsonKind` tag and dispatches on that, so
every shape rule is written against one of six known tags.
"""

from __future__ import annotations

import enum
import json
from typing import Any, Dict, List, Union

JsonValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]


class JsonKind(str, enum.Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


def kind_of(value: Any) -> JsonKind:
    """Return the tag for a decoded JSON value.

    ``bool`` is tested before the numeric types because ``True`` is an
    ``int`` in Python.  Anything that is not a JSON shape raises
    ``TypeError``.
    """
    if value is None:
        return JsonKind.NULL
    if isinstance(value, bool):
        return JsonKind.BOOL
    if isinstance(value, (int, float)):
        return JsonKind.NUMBER
    if isinstance(value, str):
        return JsonKind.STRING
    if isinstance(value, list):
        return JsonKind.ARRAY
    if isinstance(value, dict):
        return JsonKind.OBJECT
    raise TypeError(f"not a JSON value: {type(value).__name__}")


def decode_body(body: bytes) -> JsonValue:
    """Decode a raw response body.

    An empty body yields ``None``.  A body that parses as JSON yields the
    decoded value; anything else is returned as text so the caller still
    sees what the server sent.
    """
    if not body:
        return None
    text = body.decode("utf-8", errors="replace")
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


__all__ = ["JsonValue", "JsonKind", "kind_of", "decode_body"]
