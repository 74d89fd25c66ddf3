"""
Canonical JSON rendering of records and continuation tokens.

DynamoDB hands numbers back as Decimal, string/number sets as Python sets and
binary attributes as bytes; none of those are JSON-native, so they are mapped
here once for both the file sink and the checkpoint store.

Record numbers keep every digit: a Decimal is written as its exact decimal
text, so a 38-digit value read back with ``parse_float=Decimal`` compares
equal to the stored one.
"""

from __future__ import annotations

import base64
import json
from decimal import Decimal
from typing import Any, Optional

import simplejson

from table_exporter.core.models import ContinuationToken, Record

_BYTES_TAG = "__bytes__"


def _set_key(value: Any) -> Any:
    return (type(value).__name__, str(value))


def _canonical(value: Any) -> Any:
    """Map sets and bytes to JSON-native values; Decimals pass through untouched."""
    if isinstance(value, dict):
        return {k: _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, (set, frozenset)):
        items = [_canonical(v) for v in value]
        try:
            return sorted(items)
        except TypeError:
            return sorted(items, key=_set_key)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


def _dumps(value: Any) -> str:
    return simplejson.dumps(
        _canonical(value),
        use_decimal=True,
        ensure_ascii=False,
        sort_keys=True,
        indent=2,
    )


def serialize_record(record: Record) -> str:
    """Record as pretty JSON with stable key order."""
    return _dumps(record)


def serialize_page(records: list) -> str:
    """A whole page as one JSON array."""
    return _dumps(records)


class _TokenEncoder(json.JSONEncoder):
    def default(self, o: Any) -> Any:
        if isinstance(o, Decimal):
            return {"__decimal__": str(o)}
        if isinstance(o, (bytes, bytearray)):
            return {_BYTES_TAG: base64.b64encode(bytes(o)).decode("ascii")}
        return super().default(o)


def _token_hook(obj: dict) -> Any:
    if set(obj) == {"__decimal__"}:
        return Decimal(obj["__decimal__"])
    if set(obj) == {_BYTES_TAG}:
        return base64.b64decode(obj[_BYTES_TAG])
    return obj


def encode_token(token: Optional[ContinuationToken]) -> Optional[str]:
    """Persistable form of a token. The token value is carried, not interpreted."""
    if token is None:
        return None
    return json.dumps(token.value, cls=_TokenEncoder, sort_keys=True)


def decode_token(payload: Optional[str]) -> Optional[ContinuationToken]:
    if not payload:
        return None
    return ContinuationToken(json.loads(payload, object_hook=_token_hook))
