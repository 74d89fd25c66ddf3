import hashlib
from typing import Any, Iterable, Mapping


def stable_hash(text: str) -> str:
    """Generate a stable hash from text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def identity_hash(record: Mapping[str, Any], key_fields: Iterable[str]) -> str:
    """Hash of a record's identity fields; missing fields hash as empty."""
    parts = [f"{name}={record.get(name, '')}" for name in key_fields]
    return stable_hash("\x1f".join(parts))
