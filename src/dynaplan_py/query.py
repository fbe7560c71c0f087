from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .attributes import AttributeValue
from .errors import InvalidCursorError

DEFAULT_PAGE_SIZE = 50


@dataclass(frozen=True)
class Page[T]:
    items: list[T]
    next_cursor: str | None


@dataclass(frozen=True)
class Cursor:
    last_key: dict[str, AttributeValue]
    index: str | None = None


def _b64encode(value: Any) -> str:
    if not isinstance(value, (bytes, bytearray)):
        raise ValueError("binary value must be bytes")
    return base64.b64encode(bytes(value)).decode("ascii")


def _b64decode(value: Any) -> bytes:
    if not isinstance(value, str):
        raise ValueError("binary value must be a base64 string")
    return base64.b64decode(value, validate=True)


def _convert(av: Any, binary: Callable[[Any], Any], nested: Callable[[Any], Any]) -> dict[str, Any]:
    if not isinstance(av, dict) or len(av) != 1:
        raise ValueError("attribute value must be a single-key map")
    ((kind, value),) = av.items()

    if kind in {"S", "N"}:
        if not isinstance(value, str):
            raise ValueError(f"{kind} value must be a string")
        return {kind: value}
    if kind == "BOOL":
        if not isinstance(value, bool):
            raise ValueError("BOOL value must be a boolean")
        return {kind: value}
    if kind == "NULL":
        if value is not True:
            raise ValueError("NULL value must be true")
        return {kind: True}
    if kind in {"SS", "NS"}:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"{kind} value must be a list of strings")
        return {kind: list(value)}
    if kind == "B":
        return {kind: binary(value)}
    if kind == "BS":
        if not isinstance(value, list):
            raise ValueError("BS value must be a list")
        return {kind: [binary(v) for v in value]}
    if kind == "L":
        if not isinstance(value, list):
            raise ValueError("L value must be a list")
        return {kind: [nested(v) for v in value]}
    if kind == "M":
        if not isinstance(value, dict):
            raise ValueError("M value must be a map")
        return {kind: {str(k): nested(value[k]) for k in sorted(value)}}

    raise ValueError(f"unsupported attribute value type: {kind}")


def _av_to_json(av: Any) -> dict[str, Any]:
    return _convert(av, _b64encode, _av_to_json)


def _av_from_json(enc: Any) -> dict[str, Any]:
    return _convert(enc, _b64decode, _av_from_json)


def encode_cursor(last_key: dict[str, AttributeValue] | None, *, index: str | None = None) -> str | None:
    """Opaque, url-safe form of a continuation key. ``None`` when there is nothing left to read."""
    if not last_key:
        return None

    payload: dict[str, Any] = {"lastKey": {str(k): _av_to_json(last_key[k]) for k in sorted(last_key)}}
    if index is not None:
        payload["index"] = index

    data = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(data).decode("ascii")


def decode_cursor(cursor: str | None) -> Cursor | None:
    """The continuation key of ``cursor``, ``None`` for a blank cursor (start from the beginning)."""
    raw = (cursor or "").strip()
    if not raw:
        return None

    try:
        padding = "=" * (-len(raw) % 4)
        parsed = json.loads(base64.urlsafe_b64decode(raw + padding).decode("utf-8"))
        if not isinstance(parsed, dict):
            raise ValueError("cursor must decode to an object")

        last_key_raw = parsed.get("lastKey")
        if not isinstance(last_key_raw, dict) or not last_key_raw:
            raise ValueError("cursor lastKey is invalid")
        last_key = {str(k): _av_from_json(last_key_raw[k]) for k in sorted(last_key_raw)}
    except (ValueError, binascii.Error, UnicodeDecodeError) as err:
        raise InvalidCursorError(f"invalid pagination cursor: {err}") from err

    index = parsed.get("index")
    return Cursor(last_key=last_key, index=index if isinstance(index, str) else None)
