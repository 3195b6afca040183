"""JSON codec shared by every credential backend.

Byte strings are tagged as ``{"type": "Buffer", "data": "<base64>"}`` so key
material survives a round trip through text storage at any nesting depth.

A stored mapping whose own ``"type"`` value is ``"Buffer"`` or starts with
a backslash is written with one extra leading backslash and restored on
read, so no user mapping is ever mistaken for a tag.
"""

from __future__ import annotations

import base64
import json
from typing import Any

from sessiongate.exceptions import CredentialStoreError

_BUFFER_TAG = "Buffer"
_ESCAPE = "\\"


def _needs_escape(tag: Any) -> bool:
    return isinstance(tag, str) and (tag == _BUFFER_TAG or tag.startswith(_ESCAPE))


def _escape(value: Any) -> Any:
    if isinstance(value, dict):
        escaped = {key: _escape(item) for key, item in value.items()}
        if _needs_escape(escaped.get("type")):
            escaped["type"] = _ESCAPE + escaped["type"]
        return escaped
    if isinstance(value, (list, tuple)):
        return [_escape(item) for item in value]
    return value


def _encode_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {
            "type": _BUFFER_TAG,
            "data": base64.b64encode(bytes(value)).decode("ascii"),
        }
    raise TypeError(f"Object of type {type(value).__name__} is not serializable")


def _decode_hook(obj: dict[str, Any]) -> Any:
    tag = obj.get("type")
    if tag == _BUFFER_TAG:
        data = obj.get("data")
        if len(obj) != 2 or not isinstance(data, str):
            raise ValueError("malformed Buffer tag")
        return base64.b64decode(data, validate=True)
    if isinstance(tag, str) and tag.startswith(_ESCAPE):
        obj["type"] = tag[len(_ESCAPE):]
    return obj


def encode(value: Any) -> str:
    """Serialize *value* to text."""
    try:
        return json.dumps(_escape(value), default=_encode_default, sort_keys=True)
    except (TypeError, ValueError) as exc:
        raise CredentialStoreError(f"Cannot encode blob: {exc}") from exc


def decode(text: str) -> Any:
    """Restore a value produced by :func:`encode`."""
    try:
        return json.loads(text, object_hook=_decode_hook)
    except ValueError as exc:
        raise CredentialStoreError(f"Cannot decode blob: {exc}") from exc
