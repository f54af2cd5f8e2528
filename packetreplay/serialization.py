"""
JSON helpers for decoded packet params.

Params may contain raw byte strings, which JSON cannot represent directly;
they are stored as ``{"$bytes": "<base64>"}`` objects and restored on load.
Output is key-sorted and compact so equal params always encode identically.
"""

import base64
import json
from typing import Any

BYTES_KEY = "$bytes"


def _default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {BYTES_KEY: base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _object_hook(obj: dict) -> Any:
    if len(obj) == 1 and BYTES_KEY in obj:
        return base64.b64decode(obj[BYTES_KEY])
    return obj


def dumps_params(params: Any, indent: int = None) -> str:
    """Serialize params to a JSON string."""
    separators = (",", ": ") if indent else (",", ":")
    return json.dumps(params, default=_default, sort_keys=True, indent=indent, separators=separators)


def loads_params(text: str) -> Any:
    """Parse a JSON string produced by dumps_params."""
    return json.loads(text, object_hook=_object_hook)
