"""Tests for table name validation and advisory lock keys."""

import pytest

from data_cleaner.errors import ErrorKind, InvalidIdentifier
from data_cleaner.utils.identifiers import (
    advisory_lock_key,
    ensure_valid_table_name,
    is_valid_table_name,
)


@pytest.mark.parametrize("name", ["events", "Events_2023", "audit_log", "t1", "_staging"])
def test_accepts_plain_identifiers(name):
    assert is_valid_table_name(name)


@pytest.mark.parametrize(
    "name",
    [
        "events; drop table users",
        "events;",
        "events--",
        "public.events",
        "events /* x */",
        "événements",
        "dropped_rows",
        "soft_deleted",
        "INSERTS",
        "last_update",
        "events table",
    ],
)
def test_rejects_unsafe_identifiers(name):
    assert not is_valid_table_name(name)


def test_ensure_raises_domain_error():
    with pytest.raises(InvalidIdentifier) as exc_info:
        ensure_valid_table_name("events;drop")

    assert exc_info.value.kind is ErrorKind.DOMAIN
    assert ensure_valid_table_name("events") == "events"


def test_lock_key_matches_fnv1a_64():
    assert advisory_lock_key("") == 0xCBF29CE484222325 - (1 << 64)
    assert advisory_lock_key("a") == 0xAF63DC4C8601EC8C - (1 << 64)


def test_lock_key_is_stable_signed_bigint():
    key = advisory_lock_key("events")

    assert key == advisory_lock_key("events")
    assert key != advisory_lock_key("events_archive")
    assert -(1 << 63) <= key < (1 << 63)
