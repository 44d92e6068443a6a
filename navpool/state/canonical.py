"""
Deterministic canonical encoding for pool snapshots.

The same logical pool always encodes to the same bytes, so a snapshot can be
hashed into a stable state root and compared across runs.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


CANONICAL_ENCODING_VERSION = 1

_SURROGATES = range(0xD800, 0xE000)


def _check_text(s: str) -> None:
    if any(ord(ch) in _SURROGATES for ch in s):
        raise TypeError("surrogate code points cannot be canonically encoded")


def _check_value(value: Any) -> None:
    """Walk `value` and reject anything without a single JSON spelling."""
    if isinstance(value, float):
        raise TypeError(f"float {value!r} cannot be canonically encoded; use WAD ints")
    if isinstance(value, str):
        _check_text(value)
    elif isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"snapshot keys must be str, got {type(key).__name__}")
            _check_text(key)
            _check_value(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _check_value(item)


def canonical_json_bytes(value: Any) -> bytes:
    """Sorted-key, whitespace-free UTF-8 JSON. Floats and NaN are refused."""
    _check_value(value)
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


def domain_sep_bytes(tag: str) -> bytes:
    """Prefix that keeps hashes of different record kinds apart."""
    if not isinstance(tag, str) or not tag:
        raise ValueError("domain tag must be a non-empty string")
    return f"navpool:{tag}:v{CANONICAL_ENCODING_VERSION}\x00".encode("utf-8")


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
