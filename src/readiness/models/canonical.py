"""Canonical JSON serialization and hashing for reproducibility fingerprints."""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from typing import Any


def canonical_json_for_hash(obj: Any) -> str:
    """Serialize object to canonical JSON for hashing.

    Rules:
    - All keys sorted alphabetically (recursive)
    - Decimal values serialized as normalized strings
    - Enums serialized by value
    - No whitespace
    - UTF-8 encoding

    Args:
        obj: Object to serialize.

    Returns:
        Canonical JSON string.
    """

    def normalize(value: Any) -> Any:
        if isinstance(value, bool) or value is None:
            return value
        if isinstance(value, Decimal):
            return format(value.normalize(), "f")
        if isinstance(value, dict):
            return {str(k): normalize(v) for k, v in sorted(value.items(), key=lambda i: str(i[0]))}
        if isinstance(value, list | tuple):
            return [normalize(item) for item in value]
        if hasattr(value, "value"):  # Enum
            return value.value
        return value

    normalized = normalize(obj)
    return json.dumps(normalized, sort_keys=True, separators=(",", ":"))


def compute_sha256(data: str) -> str:
    """Compute SHA256 hash of a string.

    Args:
        data: String to hash.

    Returns:
        Lowercase hexadecimal hash string.
    """
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
