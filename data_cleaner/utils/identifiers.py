"""Helpers for table identifiers embedded in generated SQL.

Table names cannot be passed as bind parameters, so they are checked
here before being formatted into a statement.  This is a
defense-in-depth filter, not a SQL parser: callers must still only
accept names that refer to tables they intend to clean.
"""
from __future__ import annotations

import string

from ..errors import InvalidIdentifier


_ALLOWED_CHARS = frozenset(string.ascii_letters + string.digits + "_")
_FORBIDDEN_SUBSTRINGS = (";", "--", "/*", "*/", "drop", "delete", "insert", "update")

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_UINT64_MASK = 0xFFFFFFFFFFFFFFFF


def is_valid_table_name(name: str) -> bool:
    """Return True if `name` is safe to interpolate into a query."""
    if not all(ch in _ALLOWED_CHARS for ch in name):
        return False
    lowered = name.lower()
    return not any(word in lowered for word in _FORBIDDEN_SUBSTRINGS)


def ensure_valid_table_name(name: str) -> str:
    if not is_valid_table_name(name):
        raise InvalidIdentifier(name)
    return name


def advisory_lock_key(table_name: str) -> int:
    """Derive the advisory lock key for a table.

    64-bit FNV-1a over the UTF-8 name, reinterpreted as a signed bigint
    so it fits `pg_try_advisory_lock(bigint)`.
    """
    h = _FNV64_OFFSET
    for byte in table_name.encode("utf-8"):
        h ^= byte
        h = (h * _FNV64_PRIME) & _UINT64_MASK
    if h >= 1 << 63:
        h -= 1 << 64
    return h
